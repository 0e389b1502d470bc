"""JSON file storage for permission flags."""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import orjson
from pydantic import BaseModel, Field
from structlog import get_logger


logger = get_logger(__name__)

ADMIN_PERMISSION = "admin"
ADD_CHARACTERS_PERMISSION = "characters.add"

BUILTIN_PERMISSIONS = {
    ADMIN_PERMISSION: "Full administrative access.",
    ADD_CHARACTERS_PERMISSION: "Link additional characters to an account.",
}

PermissionListener = Callable[[str, str, bool], None]


class Permission(BaseModel):
    """A named permission and the account names granted it."""

    description: str = ""
    accounts: list[str] = Field(default_factory=list)


class PermissionRegistry:
    """Permission flags persisted as ``{"permissions": {name: {...}}}``.

    Accounts are referenced by display name. Admins implicitly hold every
    permission. ``on_change`` is called with ``(permission, account_name, enabled)``
    after every grant or revoke that changed something.
    """

    def __init__(self, file_path: Path, on_change: PermissionListener | None = None) -> None:
        self.file_path = file_path
        self.on_change = on_change
        self._permissions: dict[str, Permission] = {}
        self.load()
        for name, description in BUILTIN_PERMISSIONS.items():
            self.register_permission(name, description)

    def load(self) -> None:
        """(Re)read the permissions file, creating it if missing."""
        if not self.file_path.exists():
            self._permissions = {}
            self._save()
            return

        try:
            data = orjson.loads(self.file_path.read_bytes())
        except orjson.JSONDecodeError:
            logger.exception("permissions_json_decode_error", path=str(self.file_path))
            raise

        raw: dict[str, Any] = data.get("permissions", {}) if isinstance(data, dict) else {}
        self._permissions = {
            name: Permission.model_validate(entry) for name, entry in raw.items()
        }

    def _save(self) -> None:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "permissions": {
                name: permission.model_dump() for name, permission in self._permissions.items()
            }
        }
        self.file_path.write_bytes(orjson.dumps(data, option=orjson.OPT_INDENT_2))

    def register_permission(self, name: str, description: str = "") -> None:
        """Declare a permission; an existing one only gets a new description."""
        if not name:
            return
        existing = self._permissions.get(name)
        if existing is None:
            self._permissions[name] = Permission(description=description)
            self._save()
            return
        if description and existing.description != description:
            existing.description = description
            self._save()

    def set_account_permission(self, permission: str, account_name: str, enabled: bool) -> bool:
        """Grant or revoke a permission. Returns True if anything changed."""
        if not permission or not account_name:
            return False

        entry = self._permissions.setdefault(permission, Permission())
        has_account = account_name in entry.accounts
        if enabled == has_account:
            return False

        if enabled:
            entry.accounts.append(account_name)
        else:
            entry.accounts = [name for name in entry.accounts if name != account_name]
        self._save()
        logger.info(
            "permission_changed",
            permission=permission,
            account_name=account_name,
            enabled=enabled,
        )
        if self.on_change is not None:
            self.on_change(permission, account_name, enabled)
        return True

    def is_admin(self, account_name: str | None) -> bool:
        if not account_name:
            return False
        admin = self._permissions.get(ADMIN_PERMISSION)
        return admin is not None and account_name in admin.accounts

    def has_permission(self, account_name: str | None, permission: str) -> bool:
        if not permission:
            return False
        if self.is_admin(account_name):
            return True
        entry = self._permissions.get(permission)
        return entry is not None and account_name in entry.accounts

    def list_permissions(self) -> list[dict[str, Any]]:
        return [
            {
                "name": name,
                "description": permission.description,
                "accounts": list(permission.accounts),
            }
            for name, permission in self._permissions.items()
        ]
