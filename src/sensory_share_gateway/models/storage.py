# Файл: sensory_share_gateway/models/storage.py

from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel


class ProviderType(str, enum.Enum):
    R2 = "Cloudflare R2"
    B2 = "Backblaze B2"
    AWS = "AWS S3"
    ALIYUN_OSS = "Aliyun OSS"
    OTHER = "Other"

    @classmethod
    def parse(cls, value: str | None) -> "ProviderType":
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


class StorageConfig(BaseModel):
    id: str
    name: str
    provider_type: str = ProviderType.OTHER.value
    endpoint_url: str
    region: Optional[str] = None
    bucket_name: str
    access_key_id: str
    secret_access_key: str
    path_style: bool = False
    custom_host: Optional[str] = None
    default_folder: str = ""
    is_public: bool = False
    is_default: bool = False
    admin_id: Optional[str] = None
    total_storage_bytes: Optional[int] = None
    signature_expires_in: int = 3600

    model_config = {"from_attributes": True}

    @property
    def provider(self) -> ProviderType:
        return ProviderType.parse(self.provider_type)

    @property
    def folder_prefix(self) -> str:
        """default_folder, гарантированно со слэшем на конце (или пустая строка)."""
        folder = (self.default_folder or "").strip()
        if not folder:
            return ""
        return folder if folder.endswith("/") else folder + "/"


class Mount(BaseModel):
    """Активная точка монтирования + флаг публичности её S3-конфигурации."""

    id: str
    name: str
    storage_type: str = "S3"
    storage_config_id: str
    mount_path: str
    is_active: bool = True
    sort_order: int = 0
    is_public: bool = False
