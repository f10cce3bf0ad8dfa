from .directory_cache import DirectoryCache
from .quota_guard import QuotaGuard, Admission
from .slug_allocator import SlugAllocator
from .upload_dispatcher import UploadDispatcher, UploadStrategy, SdkPutStrategy, PresignRelayStrategy
from .upload_service import UploadService

__all__ = [
    "DirectoryCache",
    "QuotaGuard",
    "Admission",
    "SlugAllocator",
    "UploadDispatcher",
    "UploadStrategy",
    "SdkPutStrategy",
    "PresignRelayStrategy",
    "UploadService",
]
