"""
Authorization rules for tasks and the per-user live channel.

Every rule is a plain predicate over (user, task). Nothing here touches the
database or the request, so the routers and the service layer can call them
with whatever objects carry ``id`` / ``owner_id`` / ``assigned_to_id``.
"""

from errors import AuthorizationError


def can_view_any(user) -> bool:
    return True


def can_create(user) -> bool:
    return True


def can_update(user, task) -> bool:
    return user.id == task.owner_id or (
        task.assigned_to_id is not None and user.id == task.assigned_to_id
    )


def can_delete(user, task) -> bool:
    return user.id == task.owner_id


def can_assign(user, task) -> bool:
    """Only the owner may hand a task to someone else (or take it back)."""
    return user.id == task.owner_id


def can_join_channel(user, channel_user_id: int) -> bool:
    return user.id == channel_user_id


def authorize(allowed: bool, message: str = None):
    """Raise ``AuthorizationError`` unless ``allowed``."""
    if not allowed:
        raise AuthorizationError(message)
