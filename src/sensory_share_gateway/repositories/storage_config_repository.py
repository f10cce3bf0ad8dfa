import logging
from typing import Optional

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from sensory_share_gateway.db import StorageConfigORM
from sensory_share_gateway.db.base import get_session
from sensory_share_gateway.exceptions import DatabaseError
from sensory_share_gateway.models import StorageConfig

logger = logging.getLogger(__name__)


class StorageConfigRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def check_connection(self):
        """Проверяет соединение с базой данных, выполняя простой запрос."""
        logger.debug("Checking PostgreSQL connection...")
        async with get_session(self._session_factory) as session:
            try:
                await session.execute(text("SELECT 1"))
                logger.debug("PostgreSQL connection successful.")
            except SQLAlchemyError as e:
                logger.error(f"PostgreSQL connection failed: {e}")
                raise DatabaseError("Failed to connect to the database.") from e

    async def save(self, config: StorageConfigORM) -> StorageConfig:
        async with get_session(self._session_factory) as session:
            try:
                session.add(config)
                await session.commit()
                await session.refresh(config)
                return StorageConfig.model_validate(config)
            except IntegrityError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to save storage config: {e}") from e

    async def _first(self, *conditions) -> Optional[StorageConfig]:
        async with get_session(self._session_factory) as session:
            stmt = select(StorageConfigORM).where(*conditions).order_by(StorageConfigORM.created_at).limit(1)
            res = await session.execute(stmt)
            orm = res.scalar_one_or_none()
            return StorageConfig.model_validate(orm) if orm else None

    async def list_all(self) -> list[StorageConfig]:
        async with get_session(self._session_factory) as session:
            res = await session.execute(select(StorageConfigORM).order_by(StorageConfigORM.created_at))
            return [StorageConfig.model_validate(orm) for orm in res.scalars().all()]

    async def get(self, config_id: str) -> Optional[StorageConfig]:
        return await self._first(StorageConfigORM.id == config_id)

    async def get_for_admin(self, config_id: str, admin_id: str) -> Optional[StorageConfig]:
        return await self._first(StorageConfigORM.id == config_id, StorageConfigORM.admin_id == admin_id)

    async def get_public(self, config_id: str) -> Optional[StorageConfig]:
        return await self._first(StorageConfigORM.id == config_id, StorageConfigORM.is_public.is_(True))

    async def find_default(self, admin_id: str | None) -> Optional[StorageConfig]:
        """Конфигурация по умолчанию: своя для администратора, публичная для API-ключа."""
        if admin_id is not None:
            return await self._first(StorageConfigORM.admin_id == admin_id, StorageConfigORM.is_default.is_(True))
        return await self._first(StorageConfigORM.is_public.is_(True), StorageConfigORM.is_default.is_(True))

    async def find_any(self, admin_id: str | None) -> Optional[StorageConfig]:
        if admin_id is not None:
            return await self._first(StorageConfigORM.admin_id == admin_id)
        return await self._first(StorageConfigORM.is_public.is_(True))
