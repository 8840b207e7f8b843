"""Group membership engine.

State lives in several keys with no cross-key transaction:

- group:{gid}                  canonical record (members, admins, ...)
- group:{gid}:members          membership index used for authorization
- user:{uid}:groups            per-user index used for listings
- group:{gid}:join_requests    pending requester ids
- user:{admin}:group_join_requests  admin inbox records
- groups:all                   registry of live groups

Write ordering keeps partial failures on the deny side:
- granting access (create, add, approve) writes the canonical record first
  and the index views after it
- revoking access (remove, leave, dissolve) clears the index views first
  and then persists or deletes the canonical record

Concurrent updates to one group record resolve last-write-wins.

A membership-reducing operation that leaves DISSOLVE_THRESHOLD or fewer
members dissolves the group instead of persisting it.
"""

import json
import re
from uuid import uuid4

from huddle.errors import (
    ApiError,
    ApiErrorCode,
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from huddle.logging import get_logger, set_group_context
from huddle.realtime import Notifier, channels, publish_best_effort
from huddle.schemas.group import Group, GroupSummary, JoinRequest
from huddle.services import clock, rate_limit, users
from huddle.services.identity import group_conversation_id
from huddle.services.rate_limit import RateLimiter
from huddle.store import KeyValueStore, keys

logger = get_logger(__name__)

MIN_GROUP_SIZE = 3
DISSOLVE_THRESHOLD = 2
MAX_GROUP_MEMBERS = 50
MAX_NAME_CHARS = 50
MAX_DESCRIPTION_CHARS = 200
MAX_USER_ID_CHARS = 64

_ANGLE_BRACKETS = re.compile(r"[<>]")


# =============================================================================
# Validation helpers
# =============================================================================


def sanitize_name(name: str | None) -> str:
    """Strip, drop angle brackets, truncate to MAX_NAME_CHARS.

    Raises:
        InvalidRequestError(E_NAME_INVALID): Nothing left after cleaning.
    """
    cleaned = _ANGLE_BRACKETS.sub("", (name or "").strip()).strip()[:MAX_NAME_CHARS].strip()
    if not cleaned:
        raise InvalidRequestError(ApiErrorCode.E_NAME_INVALID, "Group name is required")
    return cleaned


def sanitize_description(description: str | None) -> str | None:
    if description is None:
        return None
    cleaned = _ANGLE_BRACKETS.sub("", description.strip()).strip()[:MAX_DESCRIPTION_CHARS]
    return cleaned.strip() or None


def _clean_user_ids(user_ids: list[str]) -> list[str]:
    """De-duplicate while keeping first-seen order."""
    cleaned: list[str] = []
    for raw in user_ids:
        user_id = (raw or "").strip()
        if not user_id or len(user_id) > MAX_USER_ID_CHARS or ":" in user_id:
            raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Invalid member id")
        if user_id not in cleaned:
            cleaned.append(user_id)
    return cleaned


def _unique(values) -> list[str]:
    seen: list[str] = []
    for value in values:
        if isinstance(value, str) and value and value not in seen:
            seen.append(value)
    return seen


# =============================================================================
# Canonical record access
# =============================================================================


def normalize_group(raw: dict, group_id: str, index_members: set[str] | None = None) -> Group:
    """Coerce a stored record (current or legacy shape) into a canonical Group.

    Legacy shapes carry a single `admin` field, may lack `createdBy`, or keep
    members only in the group:{gid}:members set. After normalization:
    members are unique, admins is a non-empty subset of members.
    """
    members = _unique(raw.get("members") or [])
    if not members and index_members:
        members = sorted(index_members)

    admin_source = raw.get("admins")
    if not admin_source and raw.get("admin"):
        admin_source = [raw["admin"]]
    admins = [a for a in _unique(admin_source or []) if a in members]

    created_by = raw.get("createdBy") or raw.get("admin") or (admins[0] if admins else None)
    if not created_by and members:
        created_by = members[0]

    if not admins and members:
        admins = [created_by] if created_by in members else [members[0]]

    created_at = raw.get("createdAt")
    return Group(
        id=group_id,
        name=str(raw.get("name") or "Group"),
        description=raw.get("description") or None,
        members=members,
        admins=admins,
        created_at=created_at if isinstance(created_at, int) else 0,
        created_by=created_by or "",
        avatar=raw.get("avatar") or None,
    )


def load_group(store: KeyValueStore, group_id: str) -> Group | None:
    """Read and normalize the canonical record, or None if the group does not exist."""
    raw = store.get(keys.group_record(group_id))
    if raw is None:
        return None
    try:
        record = json.loads(raw)
    except ValueError as e:
        logger.error("group_record_unparsable", group_id=group_id)
        raise ApiError(ApiErrorCode.E_INTERNAL, "Group record is unreadable") from e
    if not isinstance(record, dict):
        logger.error("group_record_unparsable", group_id=group_id)
        raise ApiError(ApiErrorCode.E_INTERNAL, "Group record is unreadable")

    index_members = None
    if not record.get("members"):
        index_members = store.smembers(keys.group_members(group_id))
    return normalize_group(record, group_id, index_members)


def _require_group(store: KeyValueStore, group_id: str) -> Group:
    set_group_context(group_id)
    group = load_group(store, group_id)
    if group is None:
        raise NotFoundError(ApiErrorCode.E_GROUP_NOT_FOUND, "Group not found")
    return group


def _require_member(group: Group, user_id: str) -> None:
    if not group.is_member(user_id):
        raise ForbiddenError(ApiErrorCode.E_NOT_A_MEMBER, "Not a member of this group")


def is_group_admin(group: Group, user_id: str) -> bool:
    """Only current members listed in admins. Creator rights end with the first departure."""
    return group.is_member(user_id) and group.is_admin(user_id)


def _require_admin(group: Group, user_id: str) -> None:
    _require_member(group, user_id)
    if not is_group_admin(group, user_id):
        raise ForbiddenError(ApiErrorCode.E_ADMIN_REQUIRED, "Group admin required")


def _save_group(store: KeyValueStore, group: Group) -> None:
    store.set(keys.group_record(group.id), group.to_json())


def _grant_index(store: KeyValueStore, group_id: str, user_ids: list[str]) -> None:
    if not user_ids:
        return
    store.sadd(keys.group_members(group_id), *user_ids)
    for user_id in user_ids:
        store.sadd(keys.user_groups(user_id), group_id)


def _revoke_index(store: KeyValueStore, group_id: str, user_ids: list[str]) -> None:
    if not user_ids:
        return
    store.srem(keys.group_members(group_id), *user_ids)
    for user_id in user_ids:
        store.srem(keys.user_groups(user_id), group_id)


# =============================================================================
# Join request inbox helpers
# =============================================================================


def _inbox_records(store: KeyValueStore, admin_id: str) -> list[tuple[str, JoinRequest]]:
    records = []
    for raw in store.smembers(keys.user_join_inbox(admin_id)):
        try:
            records.append((raw, JoinRequest.model_validate_json(raw)))
        except ValueError:
            logger.warning("join_request_unparsable", admin_id=admin_id, entry_chars=len(raw))
    return records


def _matching_records(
    store: KeyValueStore, admin_id: str, group_id: str, requester_id: str | None = None
) -> list[tuple[str, JoinRequest]]:
    return [
        (raw, record)
        for raw, record in _inbox_records(store, admin_id)
        if record.group_id == group_id
        and (requester_id is None or record.requester_id == requester_id)
    ]


def _drop_inbox_records(
    store: KeyValueStore, admin_ids: list[str], group_id: str, requester_id: str | None = None
) -> list[str]:
    """Remove matching records from each admin's inbox. Returns admins touched."""
    touched = []
    for admin_id in admin_ids:
        stale = [raw for raw, _ in _matching_records(store, admin_id, group_id, requester_id)]
        if stale:
            store.srem(keys.user_join_inbox(admin_id), *stale)
            touched.append(admin_id)
    return touched


def _publish_inbox_counts(
    store: KeyValueStore,
    notifier: Notifier,
    admin_ids: list[str],
    group_id: str,
    requester_id: str | None = None,
) -> None:
    for admin_id in admin_ids:
        pending = len(_inbox_records(store, admin_id))
        publish_best_effort(
            notifier,
            channels.user_join_requests_channel(admin_id),
            channels.GROUP_JOIN_INBOX_UPDATED,
            {"groupId": group_id, "requesterId": requester_id, "pendingCount": pending},
        )


def _clear_pending(
    store: KeyValueStore, notifier: Notifier, group: Group, requester_ids: list[str]
) -> None:
    """Resolve pending requests for requester_ids across the pending set and every admin inbox."""
    if not requester_ids:
        return
    store.srem(keys.group_join_requests(group.id), *requester_ids)
    touched: set[str] = set()
    for requester_id in requester_ids:
        touched.update(_drop_inbox_records(store, group.admins, group.id, requester_id))
    admins = [a for a in group.admins if a in touched] or list(group.admins)
    for requester_id in requester_ids:
        _publish_inbox_counts(store, notifier, admins, group.id, requester_id)


# =============================================================================
# Fan-out helpers
# =============================================================================


def _publish_to_users(
    notifier: Notifier, user_ids: list[str], event: str, payload: dict
) -> None:
    for user_id in user_ids:
        publish_best_effort(notifier, channels.user_groups_channel(user_id), event, payload)


# =============================================================================
# Reads
# =============================================================================


def get_group(store: KeyValueStore, group_id: str, viewer_id: str) -> Group:
    """Member-only view of the canonical record."""
    group = _require_group(store, group_id)
    _require_member(group, viewer_id)
    return group


def list_user_groups(store: KeyValueStore, user_id: str) -> list[Group]:
    """Groups the user belongs to, newest first.

    Index entries whose group is gone, or no longer lists the user, are
    dropped from user:{uid}:groups on the way.
    """
    result = []
    stale = []
    for group_id in sorted(store.smembers(keys.user_groups(user_id))):
        group = load_group(store, group_id)
        if group is None or not group.is_member(user_id):
            stale.append(group_id)
            continue
        result.append(group)
    if stale:
        store.srem(keys.user_groups(user_id), *stale)
        logger.info("user_group_index_repaired", stale_count=len(stale))
    result.sort(key=lambda g: (-g.created_at, g.id))
    return result


def list_all_groups(store: KeyValueStore, viewer_id: str) -> list[GroupSummary]:
    """Discovery listing over the group registry, newest first."""
    summaries = []
    for group_id in store.smembers(keys.GROUP_REGISTRY):
        group = load_group(store, group_id)
        if group is None:
            continue
        summaries.append(
            GroupSummary(
                id=group.id,
                name=group.name,
                description=group.description,
                member_count=len(group.members),
                created_at=group.created_at,
                is_member=group.is_member(viewer_id),
            )
        )
    summaries.sort(key=lambda s: (-s.created_at, s.id))
    return summaries


def list_join_requests(store: KeyValueStore, admin_id: str) -> list[JoinRequest]:
    """The admin's pending join request inbox, newest first."""
    records = [record for _, record in _inbox_records(store, admin_id)]
    records.sort(key=lambda r: (-r.requested_at, r.group_id, r.requester_id))
    return records


# =============================================================================
# Lifecycle
# =============================================================================


def create_group(
    store: KeyValueStore,
    notifier: Notifier,
    creator_id: str,
    name: str,
    member_ids: list[str],
    description: str | None = None,
) -> Group:
    """Create a group with the creator as its only admin.

    Raises:
        InvalidRequestError(E_NAME_INVALID): Empty name after sanitizing.
        InvalidRequestError(E_GROUP_TOO_SMALL): Fewer than 2 other members.
        ConflictError(E_GROUP_FULL): More than MAX_GROUP_MEMBERS members.
    """
    clean_name = sanitize_name(name)
    clean_description = sanitize_description(description)
    others = [m for m in _clean_user_ids(member_ids) if m != creator_id]
    if len(others) + 1 < MIN_GROUP_SIZE:
        raise InvalidRequestError(
            ApiErrorCode.E_GROUP_TOO_SMALL,
            f"A group needs at least {MIN_GROUP_SIZE - 1} other members",
        )
    if len(others) + 1 > MAX_GROUP_MEMBERS:
        raise ConflictError(
            ApiErrorCode.E_GROUP_FULL, f"A group holds at most {MAX_GROUP_MEMBERS} members"
        )

    group = Group(
        id=str(uuid4()),
        name=clean_name,
        description=clean_description,
        members=[creator_id, *others],
        admins=[creator_id],
        created_at=clock.now_ms(),
        created_by=creator_id,
    )
    set_group_context(group.id)

    _save_group(store, group)
    _grant_index(store, group.id, group.members)
    store.sadd(keys.GROUP_REGISTRY, group.id)

    logger.info("group_created", member_count=len(group.members))
    _publish_to_users(notifier, group.members, channels.GROUP_CREATED, group.to_payload())
    return group


def update_group(
    store: KeyValueStore,
    notifier: Notifier,
    group_id: str,
    admin_id: str,
    name: str,
    description: str | None = None,
) -> Group:
    """Rename and/or re-describe a group (admin only)."""
    clean_name = sanitize_name(name)
    clean_description = sanitize_description(description)
    group = _require_group(store, group_id)
    _require_admin(group, admin_id)

    updated = group.model_copy(update={"name": clean_name, "description": clean_description})
    _save_group(store, updated)

    logger.info("group_updated")
    _publish_to_users(notifier, updated.members, channels.GROUP_UPDATED, updated.to_payload())
    return updated


def dissolve_group(
    store: KeyValueStore, notifier: Notifier, group: Group, affected_user_ids: list[str]
) -> None:
    """Delete a group and every key derived from it.

    affected_user_ids are everyone whose user:{uid}:groups may still list the
    group (remaining and departing members). Index views are cleared before
    the canonical record.
    """
    affected = _unique([*affected_user_ids, *group.members])

    for user_id in affected:
        store.srem(keys.user_groups(user_id), group.id)
    store.delete(keys.group_members(group.id))
    _drop_inbox_records(store, _unique([*group.admins, group.created_by]), group.id)
    store.delete(
        keys.group_record(group.id),
        keys.group_log(group.id),
        keys.group_join_requests(group.id),
    )
    store.srem(keys.GROUP_REGISTRY, group.id)

    logger.info("group_dissolved", group_id=group.id, affected_count=len(affected))

    payload = {"groupId": group.id, "name": group.name}
    group_channel = channels.conversation_channel(group_conversation_id(group.id))
    publish_best_effort(notifier, group_channel, channels.GROUP_DELETED, payload)
    _publish_to_users(notifier, affected, channels.GROUP_DELETED, payload)


def delete_group(store: KeyValueStore, notifier: Notifier, group_id: str, admin_id: str) -> None:
    """Explicit admin dissolution."""
    group = _require_group(store, group_id)
    _require_admin(group, admin_id)
    dissolve_group(store, notifier, group, group.members)


def _shrink(
    store: KeyValueStore, notifier: Notifier, group: Group, departing_id: str, reason: str
) -> Group | None:
    """Remove one member, promoting or dissolving as needed.

    Returns:
        The persisted group, or None if it was dissolved.
    """
    remaining = [m for m in group.members if m != departing_id]
    admins = [a for a in group.admins if a != departing_id]

    _revoke_index(store, group.id, [departing_id])

    if len(remaining) <= DISSOLVE_THRESHOLD:
        dissolve_group(store, notifier, group, group.members)
        return None

    departing_records = [
        record for _, record in _matching_records(store, departing_id, group.id)
    ]
    _drop_inbox_records(store, [departing_id], group.id)

    if not admins:
        successor = remaining[0]
        admins = [successor]
        for record in departing_records:
            store.sadd(keys.user_join_inbox(successor), record.to_json())
        logger.info("group_admin_promoted", successor_id=successor)

    updated = group.model_copy(update={"members": remaining, "admins": admins})
    _save_group(store, updated)

    logger.info("group_member_departed", departing_id=departing_id, reason=reason)
    _publish_to_users(notifier, remaining, channels.GROUP_UPDATED, updated.to_payload())
    _publish_to_users(
        notifier, [departing_id], channels.GROUP_LEFT, {"groupId": group.id, "reason": reason}
    )
    return updated


def remove_member(
    store: KeyValueStore, notifier: Notifier, group_id: str, admin_id: str, target_id: str
) -> Group | None:
    """Admin removes another member.

    Returns:
        The updated group, or None if the removal dissolved it.

    Raises:
        InvalidRequestError: Removing yourself (use leave_group).
        ForbiddenError(E_ADMIN_REQUIRED)
        NotFoundError(E_MEMBER_NOT_FOUND): Target is not a member.
    """
    group = _require_group(store, group_id)
    if target_id == admin_id:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST, "Use leave to remove yourself from a group"
        )
    _require_admin(group, admin_id)
    if not group.is_member(target_id):
        raise NotFoundError(ApiErrorCode.E_MEMBER_NOT_FOUND, "User is not a member of this group")
    return _shrink(store, notifier, group, target_id, reason="removed")


def leave_group(
    store: KeyValueStore, notifier: Notifier, group_id: str, user_id: str
) -> Group | None:
    """Any member may leave; same promote/dissolve rules as removal."""
    group = _require_group(store, group_id)
    _require_member(group, user_id)
    return _shrink(store, notifier, group, user_id, reason="left")


def add_members(
    store: KeyValueStore,
    notifier: Notifier,
    group_id: str,
    admin_id: str,
    new_member_ids: list[str],
) -> Group:
    """Admin adds members. Ids already present are ignored.

    Raises:
        ForbiddenError(E_ADMIN_REQUIRED)
        ConflictError(E_GROUP_FULL)
    """
    candidates = _clean_user_ids(new_member_ids)
    group = _require_group(store, group_id)
    _require_admin(group, admin_id)

    to_add = [m for m in candidates if not group.is_member(m)]
    if not to_add:
        return group
    if len(group.members) + len(to_add) > MAX_GROUP_MEMBERS:
        raise ConflictError(
            ApiErrorCode.E_GROUP_FULL, f"A group holds at most {MAX_GROUP_MEMBERS} members"
        )

    updated = group.model_copy(update={"members": [*group.members, *to_add]})
    _save_group(store, updated)
    _grant_index(store, group.id, to_add)

    pending = store.smembers(keys.group_join_requests(group.id))
    _clear_pending(store, notifier, updated, [m for m in to_add if m in pending])

    logger.info("group_members_added", added_count=len(to_add))
    _publish_to_users(notifier, updated.members, channels.GROUP_UPDATED, updated.to_payload())
    return updated


# =============================================================================
# Join requests
# =============================================================================


def request_join(
    store: KeyValueStore,
    notifier: Notifier,
    group_id: str,
    requester_id: str,
    *,
    rate_limiter: RateLimiter | None = None,
) -> JoinRequest:
    """Ask to join a group. A repeated request succeeds without a second record.

    Raises:
        NotFoundError(E_GROUP_NOT_FOUND)
        ConflictError(E_ALREADY_MEMBER / E_GROUP_FULL)
    """
    group = _require_group(store, group_id)
    if group.is_member(requester_id):
        raise ConflictError(ApiErrorCode.E_ALREADY_MEMBER, "Already a member of this group")
    if len(group.members) >= MAX_GROUP_MEMBERS:
        raise ConflictError(ApiErrorCode.E_GROUP_FULL, "Group is full")

    if store.sismember(keys.group_join_requests(group.id), requester_id):
        return _ensure_inbox_records(store, group, requester_id)

    rate_limit.enforce(rate_limiter, f"join:{requester_id}")

    profile = users.get_profile(store, requester_id)
    record = JoinRequest(
        group_id=group.id,
        group_name=group.name,
        requester_id=requester_id,
        requester_name=profile.name if profile else None,
        requester_email=profile.email if profile else None,
        requested_at=clock.now_ms(),
    )
    store.sadd(keys.group_join_requests(group.id), requester_id)
    for admin_id in group.admins:
        store.sadd(keys.user_join_inbox(admin_id), record.to_json())

    logger.info("group_join_requested", requester_id=requester_id)
    for admin_id in group.admins:
        publish_best_effort(
            notifier,
            channels.user_join_requests_channel(admin_id),
            channels.GROUP_JOIN_REQUESTED,
            {**record.to_payload(), "pendingCount": len(_inbox_records(store, admin_id))},
        )
    return record


def _ensure_inbox_records(store: KeyValueStore, group: Group, requester_id: str) -> JoinRequest:
    """Return the pending record, re-adding it to any admin inbox that lost it."""
    found: JoinRequest | None = None
    missing = []
    for admin_id in group.admins:
        matches = _matching_records(store, admin_id, group.id, requester_id)
        if matches:
            found = found or matches[0][1]
        else:
            missing.append(admin_id)

    if found is None:
        profile = users.get_profile(store, requester_id)
        found = JoinRequest(
            group_id=group.id,
            group_name=group.name,
            requester_id=requester_id,
            requester_name=profile.name if profile else None,
            requester_email=profile.email if profile else None,
            requested_at=clock.now_ms(),
        )
    for admin_id in missing:
        store.sadd(keys.user_join_inbox(admin_id), found.to_json())
    return found


def approve_join(
    store: KeyValueStore,
    notifier: Notifier,
    group_id: str,
    admin_id: str,
    requester_id: str,
) -> Group:
    """Admit a pending requester.

    If the requester is already a member only the pending state is cleaned up.

    Raises:
        ForbiddenError(E_ADMIN_REQUIRED)
        NotFoundError(E_JOIN_REQUEST_NOT_FOUND): No pending request.
        ConflictError(E_GROUP_FULL)
    """
    group = _require_group(store, group_id)
    _require_admin(group, admin_id)

    if group.is_member(requester_id):
        _clear_pending(store, notifier, group, [requester_id])
        return group

    if not store.sismember(keys.group_join_requests(group.id), requester_id):
        raise NotFoundError(ApiErrorCode.E_JOIN_REQUEST_NOT_FOUND, "No pending join request")
    if len(group.members) >= MAX_GROUP_MEMBERS:
        raise ConflictError(ApiErrorCode.E_GROUP_FULL, "Group is full")

    updated = group.model_copy(update={"members": [*group.members, requester_id]})
    _save_group(store, updated)
    _grant_index(store, group.id, [requester_id])
    _clear_pending(store, notifier, updated, [requester_id])

    logger.info("group_join_approved", requester_id=requester_id)
    _publish_to_users(notifier, updated.members, channels.GROUP_UPDATED, updated.to_payload())
    return updated


def deny_join(
    store: KeyValueStore,
    notifier: Notifier,
    group_id: str,
    admin_id: str,
    requester_id: str,
) -> None:
    """Discard a join request. Succeeds when nothing is pending."""
    group = _require_group(store, group_id)
    _require_admin(group, admin_id)
    _clear_pending(store, notifier, group, [requester_id])
    logger.info("group_join_denied", requester_id=requester_id)


# =============================================================================
# Maintenance
# =============================================================================


def cleanup_undersized_groups(store: KeyValueStore, notifier: Notifier) -> dict:
    """Dissolve registered groups below MIN_GROUP_SIZE and drop dead registry ids."""
    checked = 0
    deleted = 0
    for group_id in sorted(store.smembers(keys.GROUP_REGISTRY)):
        checked += 1
        group = load_group(store, group_id)
        if group is None:
            store.srem(keys.GROUP_REGISTRY, group_id)
            continue
        if len(group.members) < MIN_GROUP_SIZE:
            dissolve_group(store, notifier, group, group.members)
            deleted += 1

    logger.info("group_cleanup_completed", checked=checked, deleted=deleted)
    return {"checked": checked, "deleted": deleted}
