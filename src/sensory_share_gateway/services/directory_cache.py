import logging
import time
from typing import Any, Optional

logger = logging.getLogger(__name__)


class DirectoryCache:
    """
    In-process кэш листингов каталогов, разбитый по S3-конфигурациям.
    Единственное общее изменяемое состояние между запросами; best-effort.
    """

    def __init__(self, default_ttl: int = 300):
        self._default_ttl = default_ttl
        self._entries: dict[str, dict[str, tuple[float, Any]]] = {}

    def get(self, storage_config_id: str, path: str) -> Optional[Any]:
        entry = self._entries.get(storage_config_id, {}).get(path)
        if entry is None:
            return None
        expires_at, listing = entry
        if expires_at < time.monotonic():
            self._entries[storage_config_id].pop(path, None)
            return None
        return listing

    def set(self, storage_config_id: str, path: str, listing: Any, ttl: int | None = None) -> None:
        expires_at = time.monotonic() + (ttl if ttl is not None else self._default_ttl)
        self._entries.setdefault(storage_config_id, {})[path] = (expires_at, listing)

    def invalidate(self, storage_config_id: str) -> int:
        """Сбрасывает все листинги конфигурации, возвращает число удалённых записей."""
        dropped = self._entries.pop(storage_config_id, {})
        return len(dropped)


def clear_cache(cache: DirectoryCache, storage_config_id: str) -> None:
    """Инвалидация после записи. Ошибка здесь не должна ронять загрузку."""
    try:
        dropped = cache.invalidate(storage_config_id)
        logger.debug(f"Invalidated {dropped} cached listing(s) for config {storage_config_id}")
    except Exception as e:
        logger.error(f"Directory cache invalidation failed for config {storage_config_id}: {e}")
