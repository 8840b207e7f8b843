"""Keep chat content out of logs.

Message text, poll wording, image payloads and credentials are never
logged. Log calls that touch them go through safe_kv, which only lets such
fields through in derived form:

    text_chars=12, text_sha256="..."     allowed
    text="hello"                         rejected
"""

import hashlib

import structlog

from huddle.config import Environment, get_settings

FORBIDDEN_KEYS = frozenset(
    {
        "text",
        "content",
        "image",
        "image_data",
        "question",
        "options",
        "emoji",
        "bearer",
        "token",
        "secret",
        "password",
        "raw_body",
    }
)

_STRICT_ENVS = frozenset({Environment.LOCAL.value, Environment.TEST.value})


def hash_text(value: str) -> str:
    """Stable SHA-256 hex digest, for correlating log lines without the content."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def text_fields(name: str, value: str) -> dict[str, object]:
    """Length and digest fields standing in for a piece of text."""
    return {f"{name}_chars": len(value), f"{name}_sha256": hash_text(value)}


def safe_kv(*, _env: str | None = None, **kwargs) -> dict:
    """Return kwargs for a log call after screening out raw content.

    A forbidden key raises ValueError in local and test so the call site gets
    fixed; elsewhere the field is dropped and a warning logged.

    Args:
        _env: Environment override, for tests. Defaults to HUDDLE_ENV.
    """
    violations = sorted(key for key in kwargs if key in FORBIDDEN_KEYS)
    if not violations:
        return kwargs

    env = _env or get_settings().huddle_env.value
    message = f"Forbidden log keys without redacted suffix: {violations}"
    if env in _STRICT_ENVS:
        raise ValueError(message)

    structlog.get_logger(__name__).warning("safe_kv_violation", forbidden_keys=violations)
    return {key: value for key, value in kwargs.items() if key not in FORBIDDEN_KEYS}
