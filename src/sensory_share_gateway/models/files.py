from __future__ import annotations

from datetime import datetime
from typing import Optional, Any

from pydantic import BaseModel, Field, field_validator


class FileRecord(BaseModel):
    id: str
    slug: str
    filename: str
    storage_path: str
    s3_url: str
    s3_config_id: str
    mimetype: Optional[str] = None
    size: int = 0
    etag: Optional[str] = None
    created_by: Optional[str] = None
    remark: Optional[str] = None
    password: Optional[str] = None
    expires_at: Optional[datetime] = None
    max_views: Optional[int] = None
    views: int = 0
    use_proxy: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @property
    def has_password(self) -> bool:
        return bool(self.password)


def _flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


class PresignRequest(BaseModel):
    s3_config_id: Optional[str] = None
    filename: Optional[str] = None
    size: Optional[int] = None
    path: Optional[str] = None
    slug: Optional[str] = None
    override: bool = False

    @field_validator("override", mode="before")
    @classmethod
    def _parse_override(cls, v):
        return _flag(v) if v is not None else False


class PresignResult(BaseModel):
    file_id: str
    upload_url: str
    storage_path: str
    s3_url: str
    slug: str
    provider_type: str
    contentType: str


class CommitRequest(BaseModel):
    file_id: Optional[str] = None
    etag: Optional[str] = None
    size: Optional[Any] = None
    password: Optional[str] = None
    expires_in: Optional[Any] = None
    remark: Optional[str] = None
    max_views: Optional[Any] = None


class DirectUploadOptions(BaseModel):
    s3_config_id: Optional[str] = None
    slug: Optional[str] = None
    path: Optional[str] = None
    remark: str = ""
    password: Optional[str] = None
    expires_in: Optional[str] = None
    max_views: Optional[str] = None
    override: bool = False
    original_filename: bool = False
    use_proxy: bool = True

    @field_validator("override", "original_filename", mode="before")
    @classmethod
    def _parse_flags(cls, v):
        return _flag(v) if v is not None else False

    @field_validator("use_proxy", mode="before")
    @classmethod
    def _parse_use_proxy(cls, v):
        # прокси включен всегда, кроме явного use_proxy=0
        if v is None:
            return True
        return str(v).strip() != "0"


class DirectUploadResult(BaseModel):
    id: str
    slug: str
    filename: str
    mimetype: str
    size: int
    remark: str = ""
    created_at: datetime
    requires_password: bool
    views: int = 0
    max_views: Optional[int] = None
    expires_at: Optional[datetime] = None
    previewUrl: str
    downloadUrl: str
    s3_direct_preview_url: str
    s3_direct_download_url: str
    proxy_preview_url: str
    proxy_download_url: str
    use_proxy: int = Field(1, description="1 - через прокси, 0 - прямая ссылка")
    created_by: str
    used_original_filename: bool = False


class ShareLinks(BaseModel):
    """Ссылки на файл: через наш прокси и прямые presigned-ссылки хранилища."""

    previewUrl: str
    downloadUrl: str
    s3_direct_preview_url: str
    s3_direct_download_url: str
    proxy_preview_url: str
    proxy_download_url: str


class CommitResult(BaseModel):
    id: str
    slug: str
    filename: str
    storage_path: str
    s3_url: str
    mimetype: Optional[str] = None
    size: int = 0
    remark: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    hasPassword: bool = False
    expiresAt: Optional[datetime] = None
    maxViews: Optional[int] = None
    url: str
    use_proxy: int = 1
    previewUrl: str
    downloadUrl: str
    s3_direct_preview_url: str
    s3_direct_download_url: str
    proxy_preview_url: str
    proxy_download_url: str
