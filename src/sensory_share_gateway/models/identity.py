from __future__ import annotations

import enum

from pydantic import BaseModel


class AuthType(str, enum.Enum):
    ADMIN = "admin"
    APIKEY = "apikey"


class ApiKeyScope(BaseModel):
    """Проекция записи API-ключа на момент запроса. Нигде не сохраняется."""

    basic_path: str = "/"
    text_permission: bool = False
    file_permission: bool = False
    mount_permission: bool = False


class Identity(BaseModel):
    auth_type: AuthType
    user_id: str
    scope: ApiKeyScope | None = None

    @property
    def is_admin(self) -> bool:
        return self.auth_type == AuthType.ADMIN

    @property
    def creator(self) -> str:
        """Значение files.created_by для этой личности."""
        if self.is_admin:
            return self.user_id
        return f"apikey:{self.user_id}"

    @property
    def basic_path(self) -> str:
        if self.scope is None:
            return "/"
        return self.scope.basic_path or "/"
