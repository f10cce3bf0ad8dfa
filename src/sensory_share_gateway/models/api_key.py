from __future__ import annotations

from datetime import datetime
from typing import Optional, Any

from pydantic import BaseModel


class ApiKeyCreate(BaseModel):
    name: str
    custom_key: Optional[str] = None
    text_permission: bool = False
    file_permission: bool = False
    mount_permission: bool = False
    basic_path: Optional[str] = None
    # None / "never" -> бессрочный; поле не передано -> сутки (см. model_fields_set)
    expires_at: Any = None


class ApiKeyInDB(BaseModel):
    id: str
    name: str
    key: str
    text_permission: bool = False
    file_permission: bool = False
    mount_permission: bool = False
    basic_path: str = "/"
    expires_at: datetime
    created_at: Optional[datetime] = None
    last_used: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @property
    def key_masked(self) -> str:
        return self.key[:6] + "..."
