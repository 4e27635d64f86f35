"""
Role/permission collaborator.

Role lookup tables live outside this service; event operations only need to
ask whether a user may perform an action. ``get_permission_checker`` is the
FastAPI dependency the routes use and deployments override.
"""
import enum
from typing import Iterable, Mapping, Protocol


class EventAction(str, enum.Enum):
    CREATE = "event:create"
    UPDATE = "event:update"
    DELETE = "event:delete"


class PermissionChecker(Protocol):
    def has_permission(self, user_id: int, action: EventAction) -> bool: ...


class AllowAllPermissions:
    """Grants every action. Used when no role service is wired in."""

    def has_permission(self, user_id: int, action: EventAction) -> bool:
        return True


class StaticPermissions:
    """Grants from a fixed ``user_id -> actions`` table."""

    def __init__(self, grants: Mapping[int, Iterable[EventAction]]):
        self._grants = {user_id: frozenset(actions) for user_id, actions in grants.items()}

    def has_permission(self, user_id: int, action: EventAction) -> bool:
        return action in self._grants.get(user_id, frozenset())


def get_permission_checker() -> PermissionChecker:
    return AllowAllPermissions()
