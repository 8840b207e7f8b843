"""User profile records.

Profiles are upserted from verified token claims on every authenticated
request and read back for sender display metadata and friend listings.
"""

from huddle.logging import get_logger
from huddle.schemas.user import UserProfile
from huddle.store import KeyValueStore, keys

logger = get_logger(__name__)


def get_profile(store: KeyValueStore, user_id: str) -> UserProfile | None:
    raw = store.get(keys.user_profile(user_id))
    if raw is None:
        return None
    try:
        return UserProfile.model_validate_json(raw)
    except ValueError:
        logger.warning("profile_unparsable", profile_user_id=user_id)
        return UserProfile(id=user_id)


def ensure_profile(
    store: KeyValueStore,
    user_id: str,
    name: str | None = None,
    email: str | None = None,
    image: str | None = None,
) -> UserProfile:
    """Create or refresh the caller's profile from token claims.

    Claims that are absent keep their stored value. Writes only when
    something changed.
    """
    existing = get_profile(store, user_id)
    profile = UserProfile(
        id=user_id,
        name=name if name is not None else (existing.name if existing else None),
        email=email if email is not None else (existing.email if existing else None),
        image=image if image is not None else (existing.image if existing else None),
    )
    if existing is None or existing != profile:
        store.set(keys.user_profile(user_id), profile.to_json())
        if existing is None:
            logger.info("profile_created", profile_user_id=user_id)
    return profile


def get_profiles(store: KeyValueStore, user_ids: list[str]) -> list[UserProfile]:
    """Profiles for user_ids, in order; unknown ids get a bare profile."""
    return [get_profile(store, user_id) or UserProfile(id=user_id) for user_id in user_ids]


def display_metadata(store: KeyValueStore, user_id: str) -> dict:
    """senderName / senderImg fields attached to inbox notifications."""
    profile = get_profile(store, user_id)
    if profile is None:
        return {"senderName": None, "senderImg": None}
    return {"senderName": profile.name or profile.email, "senderImg": profile.image}
