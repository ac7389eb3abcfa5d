"""Role-based permission checks shared by every guarded operation."""

from __future__ import annotations

import logging
from typing import Any

from staybook.config import settings
from staybook.errors import PermissionDeniedError

logger = logging.getLogger(__name__)


class Authorizer:
    """Answers ``may this actor do this`` from a role -> permissions table.

    Permissions look like ``booking:confirm``. A trailing ``:own`` scopes
    the permission to records the actor owns; ``resource:*`` grants every
    action on a resource and ``*`` grants everything.
    """

    def __init__(self, role_permissions: dict[str, list[str]] | None = None) -> None:
        if role_permissions is None:
            role_permissions = settings.get("permissions", {})
        self._role_permissions = {role: set(perms or []) for role, perms in role_permissions.items()}

    def permissions_for(self, role: str) -> set[str]:
        return self._role_permissions.get(role, set())

    def check(self, actor: Any, permission: str, owner_id: Any = None) -> bool:
        if actor is None or not getattr(actor, "role", None):
            return False
        if getattr(actor, "status", "active") == "disabled":
            return False

        granted = self.permissions_for(actor.role)
        if "*" in granted:
            return True

        if permission.endswith(":own"):
            if permission not in granted:
                return False
            return owner_id is None or owner_id == actor.id

        resource = permission.split(":", 1)[0]
        return permission in granted or f"{resource}:*" in granted

    def check_any(self, actor: Any, permission: str, owner_id: Any = None) -> bool:
        """Allow the general permission, or its ``:own`` variant on the actor's record."""
        if self.check(actor, permission):
            return True
        # An unowned record (e.g. a walk-in booking) is never "own"
        return owner_id is not None and self.check(actor, f"{permission}:own", owner_id=owner_id)

    def require(self, actor: Any, permission: str, owner_id: Any = None) -> None:
        if not self.check(actor, permission, owner_id=owner_id):
            logger.info("Denied %s to %r", permission, actor)
            raise PermissionDeniedError(permission)

    def require_any(self, actor: Any, permission: str, owner_id: Any = None) -> None:
        if not self.check_any(actor, permission, owner_id=owner_id):
            logger.info("Denied %s to %r", permission, actor)
            raise PermissionDeniedError(permission)
