"""Evaluation of group settings against membership and messaging actions."""

from __future__ import annotations

import secrets
from typing import Any, Mapping

from app.core.errors import PermissionDeniedError, ValidationError
from app.models import GroupConversation

LINK_TOKEN_ALPHABET = "0123456789abcdef"
LINK_TOKEN_LENGTH = 15

# Dotted paths a settings patch may touch, with the type each value must have.
EDITABLE_SETTINGS: dict[str, type | tuple[type, ...]] = {
    "linkToken": (str, type(None)),
    "members.editGroupData": bool,
    "members.sendNewMessages": bool,
    "members.addOtherMembers": bool,
    "members.inviteViaLink": bool,
    "admin.approveNewMembers": bool,
}


def generate_link_token() -> str:
    return "".join(secrets.choice(LINK_TOKEN_ALPHABET) for _ in range(LINK_TOKEN_LENGTH))


def flatten_settings(patch: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten a nested mapping into dotted paths.

    Args:
        patch: Possibly nested mapping, e.g. ``{"members": {"inviteViaLink": True}}``.
        prefix: Path accumulated by the recursive calls.

    Returns:
        Mapping such as ``{"members.inviteViaLink": True}``.
    """
    flat: dict[str, Any] = {}
    for key, value in patch.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(flatten_settings(value, path))
        else:
            flat[path] = value
    return flat


def is_participant(group: GroupConversation, user_id: int) -> bool:
    return group.has_participant(user_id)


def can_join(group: GroupConversation, actor_id: int, link_token: str | None) -> bool:
    """Return True when ``link_token`` matches the group's token exactly.

    Args:
        group: Target group.
        actor_id: User trying to join through the invite link.
        link_token: Token presented by the user.

    Returns:
        Whether the join is allowed. Already joined users are denied.
    """
    current = group.settings.get("linkToken")
    if not current or link_token != current:
        return False
    return not is_participant(group, actor_id)


def can_add_member(group: GroupConversation, actor_id: int, target_id: int) -> bool:
    """Return True if ``actor_id`` may add ``target_id`` to the group.

    Args:
        group: Target group.
        actor_id: User performing the addition.
        target_id: User being added.

    Returns:
        Admins may always add; other participants only while
        ``members.addOtherMembers`` is enabled. Existing participants can
        never be added twice.
    """
    if is_participant(group, target_id):
        return False
    if group.is_admin(actor_id):
        return True
    return bool(group.settings["members"]["addOtherMembers"]) and is_participant(group, actor_id)


def can_remove_member(group: GroupConversation, actor_id: int) -> bool:
    return group.is_admin(actor_id)


def can_send_message(group: GroupConversation, actor_id: int) -> bool:
    if group.is_admin(actor_id):
        return True
    return bool(group.settings["members"]["sendNewMessages"]) and is_participant(group, actor_id)


def can_edit_settings(group: GroupConversation, actor_id: int) -> bool:
    return group.is_admin(actor_id)


def can_edit_group_data(group: GroupConversation, actor_id: int) -> bool:
    if group.is_admin(actor_id):
        return True
    return bool(group.settings["members"]["editGroupData"]) and is_participant(group, actor_id)


def requires_admin_approval(group: GroupConversation, actor_id: int) -> bool:
    """Non-admin membership additions are refused while approval is switched on."""

    return bool(group.settings["admin"]["approveNewMembers"]) and not group.is_admin(actor_id)


def filter_settings_patch(patch: Mapping[str, Any]) -> dict[str, Any]:
    """Reduce a settings patch to the editable paths.

    Unknown paths are dropped silently. A value of the wrong type or a patch
    with nothing left after filtering raises ``ValidationError``.
    """
    effective: dict[str, Any] = {}
    for path, value in flatten_settings(patch).items():
        expected = EDITABLE_SETTINGS.get(path)
        if expected is None:
            continue
        if not isinstance(value, expected):
            raise ValidationError(f"Invalid value for '{path}'")
        effective[path] = value
    if not effective:
        raise ValidationError("No editable settings provided")
    return effective


def apply_settings_patch(group: GroupConversation, effective: Mapping[str, Any]) -> dict[str, Any]:
    """Write already filtered dotted paths onto the group's settings.

    The JSON column is replaced with a new object so the change is flushed.
    """
    updated = group.settings
    for path, value in effective.items():
        node = updated
        *parents, leaf = path.split(".")
        for part in parents:
            node = node.setdefault(part, {})
        node[leaf] = value
    group.group_settings = updated
    return updated


def ensure_link_token(group: GroupConversation) -> str:
    """Return the group's link token, creating one if it is absent."""

    token = group.settings.get("linkToken")
    if token:
        return token
    return set_link_token(group, generate_link_token())


def rotate_link_token(group: GroupConversation) -> str:
    previous = group.settings.get("linkToken")
    token = generate_link_token()
    while token == previous:
        token = generate_link_token()
    return set_link_token(group, token)


def set_link_token(group: GroupConversation, token: str) -> str:
    settings = group.settings
    settings["linkToken"] = token
    group.group_settings = settings
    return token


def project_settings(group: GroupConversation, viewer_id: int | None) -> dict[str, Any]:
    """Settings as seen by ``viewer_id``.

    The admin always sees ``linkToken``; members only while
    ``members.inviteViaLink`` is enabled. ``None`` projects for a plain
    member, which is what room broadcasts carry.
    """
    projected = group.settings
    if not group.is_admin(viewer_id) and not projected["members"]["inviteViaLink"]:
        projected["linkToken"] = None
    return projected


def require(allowed: bool, message: str) -> None:
    if not allowed:
        raise PermissionDeniedError(message)
