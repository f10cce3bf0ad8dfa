import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from sensory_share_gateway.db import SystemSettingORM
from sensory_share_gateway.db.base import get_session

logger = logging.getLogger(__name__)

MAX_UPLOAD_SIZE_KEY = "max_upload_size"


class SettingsRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], default_max_upload_mb: int = 100):
        self._session_factory = session_factory
        self._default_max_upload_mb = default_max_upload_mb

    async def get_value(self, key: str) -> Optional[str]:
        async with get_session(self._session_factory) as session:
            res = await session.execute(select(SystemSettingORM.value).where(SystemSettingORM.key == key))
            return res.scalar_one_or_none()

    async def set_value(self, key: str, value: str) -> None:
        async with get_session(self._session_factory) as session:
            await session.merge(SystemSettingORM(key=key, value=value))
            await session.commit()

    async def get_max_upload_size_bytes(self) -> int:
        """system_settings.max_upload_size хранится в MiB."""
        raw = await self.get_value(MAX_UPLOAD_SIZE_KEY)
        try:
            megabytes = int(raw) if raw is not None else self._default_max_upload_mb
        except ValueError:
            logger.warning(f"Invalid max_upload_size setting {raw!r}, using default")
            megabytes = self._default_max_upload_mb
        return megabytes * 1024 * 1024
