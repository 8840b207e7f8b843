"""FastAPI dependencies for route handlers.

The store, notifier and rate limiters are built once at startup and held
on app.state; routes receive them through these dependencies.
"""

from fastapi import Request

from huddle.config import Settings, get_settings
from huddle.realtime import Notifier
from huddle.services.rate_limit import RateLimiter
from huddle.store import KeyValueStore

__all__ = [
    "get_app_settings",
    "get_notifier",
    "get_request_limiter",
    "get_send_limiter",
    "get_store",
]


def get_store(request: Request) -> KeyValueStore:
    return request.app.state.store


def get_notifier(request: Request) -> Notifier:
    return request.app.state.notifier


def get_send_limiter(request: Request) -> RateLimiter:
    """Limiter for message sends and poll creation."""
    return request.app.state.send_limiter


def get_request_limiter(request: Request) -> RateLimiter:
    """Limiter for join and friend requests."""
    return request.app.state.request_limiter


def get_app_settings() -> Settings:
    return get_settings()
