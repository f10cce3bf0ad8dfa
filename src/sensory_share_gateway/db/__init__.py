# sensory_share_gateway/db/__init__.py

from .base import Base

from .storage_config_orm import StorageConfigORM
from .mount_orm import StorageMountORM
from .api_key_orm import ApiKeyORM
from .file_orm import FileORM, FilePasswordORM
from .settings_orm import SystemSettingORM


__all__ = [
    "Base",
    "StorageConfigORM",
    "StorageMountORM",
    "ApiKeyORM",
    "FileORM",
    "FilePasswordORM",
    "SystemSettingORM",
]
