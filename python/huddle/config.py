"""Application settings loaded from environment variables.

Environment Configuration:
    HUDDLE_ENV: Deployment environment (local | test | staging | prod)
    HUDDLE_INTERNAL_SECRET: Internal API secret (required in staging/prod)
    LOG_JSON: Emit JSON logs (default true); false switches to the console renderer

Store / Fan-out Configuration:
    STORE_BACKEND: redis | memory
    NOTIFIER_BACKEND: redis | pusher | memory
    REDIS_URL: Redis connection string (required by any redis backend)
    PUSHER_APP_ID, PUSHER_KEY, PUSHER_SECRET, PUSHER_CLUSTER: Pusher credentials

Auth Configuration (exactly one verifier):
    AUTH_JWT_SECRET: HS256 shared secret
    AUTH_JWKS_URL: JWKS endpoint for RS256/ES256 tokens (requires AUTH_ISSUER)
    AUTH_ISSUER: Expected JWT issuer (trailing slash stripped)
    AUTH_AUDIENCES: Comma-separated list of allowed audiences (optional)
"""

from enum import Enum
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Environment(str, Enum):
    """Valid deployment environments."""

    LOCAL = "local"
    TEST = "test"
    STAGING = "staging"
    PROD = "prod"


class StoreBackend(str, Enum):
    REDIS = "redis"
    MEMORY = "memory"


class NotifierBackend(str, Enum):
    REDIS = "redis"
    PUSHER = "pusher"
    MEMORY = "memory"


class Settings(BaseSettings):
    """Application configuration.

    Settings are loaded from environment variables.
    Validation rules:
    - exactly one of AUTH_JWT_SECRET / AUTH_JWKS_URL is set; JWKS also needs AUTH_ISSUER
    - REDIS_URL is required when the store or the notifier uses redis
    - all PUSHER_* settings are required for the pusher notifier
    - HUDDLE_INTERNAL_SECRET is required in staging and prod only
    """

    huddle_env: Environment = Field(default=Environment.LOCAL, alias="HUDDLE_ENV")
    huddle_internal_secret: str | None = Field(default=None, alias="HUDDLE_INTERNAL_SECRET")
    log_json: bool = Field(default=True, alias="LOG_JSON")

    # Store / fan-out
    store_backend: StoreBackend = Field(default=StoreBackend.REDIS, alias="STORE_BACKEND")
    notifier_backend: NotifierBackend = Field(
        default=NotifierBackend.REDIS, alias="NOTIFIER_BACKEND"
    )
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    pusher_app_id: str | None = Field(default=None, alias="PUSHER_APP_ID")
    pusher_key: str | None = Field(default=None, alias="PUSHER_KEY")
    pusher_secret: str | None = Field(default=None, alias="PUSHER_SECRET")
    pusher_cluster: str | None = Field(default=None, alias="PUSHER_CLUSTER")

    # Auth
    auth_jwt_secret: str | None = Field(default=None, alias="AUTH_JWT_SECRET")
    auth_jwks_url: str | None = Field(default=None, alias="AUTH_JWKS_URL")
    auth_issuer: str | None = Field(default=None, alias="AUTH_ISSUER")
    auth_audiences: str | None = Field(default=None, alias="AUTH_AUDIENCES")

    # Rate limits
    rate_limit_window_seconds: int = Field(default=60, ge=1, alias="RATE_LIMIT_WINDOW_SECONDS")
    rate_limit_send_per_window: int = Field(default=30, ge=1, alias="RATE_LIMIT_SEND_PER_WINDOW")
    rate_limit_request_per_window: int = Field(
        default=10, ge=1, alias="RATE_LIMIT_REQUEST_PER_WINDOW"
    )

    # Content limits
    max_image_bytes: int = Field(default=5 * 1024 * 1024, ge=1, alias="MAX_IMAGE_BYTES")  # 5 MB

    # Direct chats between non-friends are allowed unless this is switched on
    direct_chat_requires_friendship: bool = Field(
        default=False, alias="DIRECT_CHAT_REQUIRES_FRIENDSHIP"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_required_settings(self) -> "Settings":
        """Ensure backend and auth settings are consistent."""
        if bool(self.auth_jwt_secret) == bool(self.auth_jwks_url):
            raise ValueError(
                "Exactly one of AUTH_JWT_SECRET or AUTH_JWKS_URL must be set"
            )
        if self.auth_jwks_url and not self.auth_issuer:
            raise ValueError("AUTH_ISSUER is required when AUTH_JWKS_URL is set")

        uses_redis = (
            self.store_backend == StoreBackend.REDIS
            or self.notifier_backend == NotifierBackend.REDIS
        )
        if uses_redis and not self.redis_url:
            raise ValueError("REDIS_URL is required when a redis backend is selected")

        if self.notifier_backend == NotifierBackend.PUSHER:
            missing_pusher = [
                name
                for name, value in (
                    ("PUSHER_APP_ID", self.pusher_app_id),
                    ("PUSHER_KEY", self.pusher_key),
                    ("PUSHER_SECRET", self.pusher_secret),
                    ("PUSHER_CLUSTER", self.pusher_cluster),
                )
                if not value
            ]
            if missing_pusher:
                raise ValueError(
                    f"Missing required Pusher settings: {', '.join(missing_pusher)}"
                )

        if self.huddle_env in (Environment.STAGING, Environment.PROD):
            if not self.huddle_internal_secret:
                raise ValueError(
                    f"HUDDLE_INTERNAL_SECRET is required for HUDDLE_ENV={self.huddle_env.value}"
                )

        return self

    @property
    def audience_list(self) -> list[str]:
        """Parse comma-separated audiences into a list."""
        if self.auth_audiences:
            return [a.strip() for a in self.auth_audiences.split(",") if a.strip()]
        return []

    @property
    def normalized_issuer(self) -> str | None:
        """Return issuer with trailing slash stripped."""
        if self.auth_issuer:
            return self.auth_issuer.rstrip("/")
        return None


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
