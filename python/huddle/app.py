"""Application factory.

create_app wires one instance of each backend onto app.state:

    store          MemoryStore | RedisStore            (STORE_BACKEND)
    notifier       InMemory | Redis | Pusher notifier  (NOTIFIER_BACKEND)
    send_limiter   per-sender message and poll limit
    request_limiter  join and friend request limit

Redis-backed pieces share one client, closed in the lifespan. Rate limits
are shared across processes only when that client exists.

The token verifier is HS256 when AUTH_JWT_SECRET is set, otherwise JWKS.

Middleware is applied outermost-last, so add_request_id_middleware must be
called after create_app. Per request:

    RequestIDMiddleware -> AuthMiddleware -> reject_malformed_json -> route

which gives 401s and body errors an X-Request-ID too.
"""

from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI

from huddle.api.routes import create_api_router
from huddle.auth.middleware import AuthMiddleware, Viewer
from huddle.auth.verifier import HmacTokenVerifier, JwksVerifier, TokenVerifier
from huddle.config import NotifierBackend, Settings, StoreBackend, get_settings
from huddle.logging import configure_logging, get_logger
from huddle.middleware.json_body import reject_malformed_json
from huddle.middleware.request_id import RequestIDMiddleware
from huddle.realtime import InMemoryNotifier, Notifier, PusherNotifier, RedisNotifier
from huddle.responses import register_exception_handlers
from huddle.services import users
from huddle.services.rate_limit import InMemoryRateLimiter, RateLimiter, RedisRateLimiter
from huddle.store import KeyValueStore, MemoryStore, RedisStore

logger = get_logger(__name__)


def _redis_client(settings: Settings) -> redis.Redis:
    return redis.Redis.from_url(settings.redis_url, decode_responses=True, socket_timeout=5)


def build_store(settings: Settings, redis_client: redis.Redis | None = None) -> KeyValueStore:
    """Create the store selected by STORE_BACKEND."""
    if settings.store_backend == StoreBackend.MEMORY:
        return MemoryStore()
    return RedisStore(redis_client or _redis_client(settings))


def build_notifier(settings: Settings, redis_client: redis.Redis | None = None) -> Notifier:
    """Create the fan-out backend selected by NOTIFIER_BACKEND."""
    if settings.notifier_backend == NotifierBackend.MEMORY:
        return InMemoryNotifier()
    if settings.notifier_backend == NotifierBackend.PUSHER:
        return PusherNotifier.from_credentials(
            app_id=settings.pusher_app_id,  # type: ignore[arg-type]
            key=settings.pusher_key,  # type: ignore[arg-type]
            secret=settings.pusher_secret,  # type: ignore[arg-type]
            cluster=settings.pusher_cluster,  # type: ignore[arg-type]
        )
    return RedisNotifier(redis_client or _redis_client(settings))


def build_rate_limiters(
    settings: Settings, redis_client: redis.Redis | None = None
) -> tuple[RateLimiter, RateLimiter]:
    """Create the (send, request) limiters.

    Limits are shared across instances only when a redis client is available.
    """
    window = settings.rate_limit_window_seconds
    if redis_client is not None:
        return (
            RedisRateLimiter(redis_client, settings.rate_limit_send_per_window, window),
            RedisRateLimiter(redis_client, settings.rate_limit_request_per_window, window),
        )
    return (
        InMemoryRateLimiter(settings.rate_limit_send_per_window, window),
        InMemoryRateLimiter(settings.rate_limit_request_per_window, window),
    )


def create_bootstrap_callback(store: KeyValueStore):
    """Create the callback the auth middleware runs for each authenticated request.

    It refreshes the viewer's profile from the token's display claims.
    """

    def bootstrap(viewer: Viewer) -> None:
        users.ensure_profile(
            store, viewer.user_id, name=viewer.name, email=viewer.email, image=viewer.image
        )

    return bootstrap


def create_token_verifier() -> TokenVerifier:
    """Create the token verifier selected by the auth settings.

    Returns:
        HmacTokenVerifier when AUTH_JWT_SECRET is set, otherwise JwksVerifier.
    """
    settings = get_settings()

    if settings.auth_jwt_secret:
        return HmacTokenVerifier(
            secret=settings.auth_jwt_secret,
            issuer=settings.normalized_issuer,
            audiences=settings.audience_list,
        )
    return JwksVerifier(
        jwks_url=settings.auth_jwks_url,  # type: ignore[arg-type]
        issuer=settings.normalized_issuer,  # type: ignore[arg-type]
        audiences=settings.audience_list,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Close the shared redis client at shutdown."""
    yield

    redis_client = getattr(app.state, "redis_client", None)
    if redis_client is not None:
        try:
            redis_client.close()
        except redis.RedisError as e:
            logger.warning("redis_client_close_failed", error=str(e))
        logger.info("redis_client_closed")


def create_app(
    skip_auth_middleware: bool = False,
    token_verifier: TokenVerifier | None = None,
    store: KeyValueStore | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        skip_auth_middleware: If True, skip adding auth middleware (for testing).
        token_verifier: Optional custom token verifier (for testing).
        store: Optional store instance; built from settings when omitted.
        notifier: Optional notifier instance; built from settings when omitted.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()
    configure_logging(json_format=settings.log_json)

    app = FastAPI(
        title="Huddle API",
        description="Backend API for Huddle - direct and group chat",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    uses_redis = (
        settings.store_backend == StoreBackend.REDIS
        or settings.notifier_backend == NotifierBackend.REDIS
    )
    redis_client = _redis_client(settings) if uses_redis else None

    app.state.redis_client = redis_client
    app.state.store = store if store is not None else build_store(settings, redis_client)
    app.state.notifier = (
        notifier if notifier is not None else build_notifier(settings, redis_client)
    )
    app.state.send_limiter, app.state.request_limiter = build_rate_limiters(
        settings, redis_client
    )

    logger.info(
        "backends_initialized",
        store_backend=settings.store_backend.value,
        notifier_backend=settings.notifier_backend.value,
        shared_rate_limits=redis_client is not None,
    )

    register_exception_handlers(app)
    app.middleware("http")(reject_malformed_json)

    app.include_router(create_api_router())

    if not skip_auth_middleware:
        verifier = token_verifier or create_token_verifier()

        app.add_middleware(
            AuthMiddleware,
            verifier=verifier,
            bootstrap_callback=create_bootstrap_callback(app.state.store),
        )

        logger.info(
            "auth_middleware_enabled",
            env=settings.huddle_env.value,
            verifier=type(verifier).__name__,
        )

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware to the app.

    This should be called AFTER all other middleware is added, so it runs FIRST.
    This ensures every response includes X-Request-ID, including auth failures.

    Args:
        app: The FastAPI application.
        log_requests: Whether to log access entries for each request.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
    logger.info("request_id_middleware_enabled")
