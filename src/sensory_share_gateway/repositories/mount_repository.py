import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from sensory_share_gateway.db import StorageMountORM, StorageConfigORM
from sensory_share_gateway.db.base import get_session
from sensory_share_gateway.models import Mount

logger = logging.getLogger(__name__)


class MountRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_active(self) -> list[Mount]:
        """Все активные точки монтирования + is_public их S3-конфигурации (LEFT JOIN)."""
        stmt = (
            select(
                StorageMountORM.id,
                StorageMountORM.name,
                StorageMountORM.storage_type,
                StorageMountORM.storage_config_id,
                StorageMountORM.mount_path,
                StorageMountORM.is_active,
                StorageMountORM.sort_order,
                StorageConfigORM.is_public,
            )
            .select_from(StorageMountORM)
            .outerjoin(StorageConfigORM, StorageMountORM.storage_config_id == StorageConfigORM.id)
            .where(StorageMountORM.is_active.is_(True))
            .order_by(StorageMountORM.sort_order.asc(), StorageMountORM.name.asc())
        )
        async with get_session(self._session_factory) as session:
            rows = (await session.execute(stmt)).mappings().all()
            return [Mount.model_validate({**row, "is_public": bool(row["is_public"])}) for row in rows]

    async def save(self, mount: StorageMountORM) -> None:
        async with get_session(self._session_factory) as session:
            session.add(mount)
            await session.commit()
