from .s3_repository import S3Repository
from .file_repository import FileRepository
from .storage_config_repository import StorageConfigRepository
from .mount_repository import MountRepository
from .settings_repository import SettingsRepository
from .api_key_repository import ApiKeyRepository

__all__ = [
    "S3Repository",
    "FileRepository",
    "StorageConfigRepository",
    "MountRepository",
    "SettingsRepository",
    "ApiKeyRepository",
]
