from .storage import ProviderType, StorageConfig, Mount
from .identity import AuthType, ApiKeyScope, Identity
from .files import (FileRecord, PresignRequest, PresignResult, CommitRequest, CommitResult,
                    DirectUploadOptions, DirectUploadResult, ShareLinks)
from .api_key import ApiKeyCreate, ApiKeyInDB

__all__ = [
    "ProviderType", "StorageConfig", "Mount",
    "AuthType", "ApiKeyScope", "Identity",
    "FileRecord", "PresignRequest", "PresignResult", "CommitRequest", "CommitResult",
    "DirectUploadOptions", "DirectUploadResult", "ShareLinks",
    "ApiKeyCreate", "ApiKeyInDB",
]
