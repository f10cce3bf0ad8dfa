# sensory_share_gateway/repositories/file_repository.py

import logging
from typing import Optional, Any

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from sensory_share_gateway.db import FileORM, FilePasswordORM
from sensory_share_gateway.db.base import get_session
from sensory_share_gateway.exceptions import DatabaseError, ConflictError
from sensory_share_gateway.models import FileRecord
from sensory_share_gateway.utils.records import require_name, coerce_non_negative

logger = logging.getLogger(__name__)

_UPDATABLE = {
    "filename", "etag", "created_by", "remark", "password", "expires_at",
    "max_views", "size", "use_proxy", "mimetype", "storage_path", "s3_url",
}


class FileRepository:
    """
    Жизненный цикл записи files и её "тени" file_passwords.
    Запись создаётся либо placeholder'ом (size=0, etag=None) на этапе presign,
    либо сразу полной при direct-загрузке.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def insert(self, **fields: Any) -> FileRecord:
        fields["slug"] = require_name(fields.get("slug"), "slug")
        fields["filename"] = require_name(fields.get("filename"), "filename")
        fields["size"] = coerce_non_negative(fields.get("size"), default=0)
        if fields.get("max_views") is not None:
            fields["max_views"] = coerce_non_negative(fields["max_views"], default=None) or None

        orm = FileORM(**fields)
        async with get_session(self._session_factory) as session:
            try:
                session.add(orm)
                await session.commit()
                await session.refresh(orm)
                return FileRecord.model_validate(orm)
            except IntegrityError as e:
                await session.rollback()
                # уникальный индекс по slug - последний арбитр в гонке двух загрузок
                raise ConflictError(f"Slug '{fields['slug']}' is already taken") from e
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to insert file record: {e}") from e

    async def get(self, file_id: str) -> Optional[FileRecord]:
        async with get_session(self._session_factory) as session:
            res = await session.execute(select(FileORM).where(FileORM.id == file_id))
            orm = res.scalar_one_or_none()
            return FileRecord.model_validate(orm) if orm else None

    async def get_by_slug(self, slug: str) -> Optional[FileRecord]:
        async with get_session(self._session_factory) as session:
            res = await session.execute(select(FileORM).where(FileORM.slug == slug))
            orm = res.scalar_one_or_none()
            return FileRecord.model_validate(orm) if orm else None

    async def slug_exists(self, slug: str) -> bool:
        async with get_session(self._session_factory) as session:
            res = await session.execute(select(FileORM.id).where(FileORM.slug == slug).limit(1))
            return res.scalar_one_or_none() is not None

    async def update(self, file_id: str, patch: dict[str, Any]) -> Optional[FileRecord]:
        """Пишет только переданные поля. Пустой patch - просто перечитать запись."""
        unknown = set(patch) - _UPDATABLE
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")
        values = dict(patch)
        if "filename" in values:
            values["filename"] = require_name(values["filename"], "filename")
        if "size" in values:
            values["size"] = coerce_non_negative(values["size"], default=0)
        if values.get("max_views") is not None:
            values["max_views"] = coerce_non_negative(values["max_views"], default=None) or None
        if not values:
            return await self.get(file_id)

        async with get_session(self._session_factory) as session:
            try:
                q = (
                    update(FileORM)
                    .where(FileORM.id == file_id)
                    .values(**values, updated_at=func.now())
                    .returning(FileORM)
                )
                res = await session.execute(q)
                orm = res.scalar_one_or_none()
                await session.commit()
                return FileRecord.model_validate(orm) if orm else None
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to update file {file_id}: {e}") from e

    async def delete(self, file_id: str) -> bool:
        """Удаляет запись вместе с паролем; file_passwords никогда не остаётся сиротой."""
        async with get_session(self._session_factory) as session:
            try:
                await session.execute(delete(FilePasswordORM).where(FilePasswordORM.file_id == file_id))
                res = await session.execute(delete(FileORM).where(FileORM.id == file_id))
                await session.commit()
                return res.rowcount > 0
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to delete file {file_id}: {e}") from e

    async def upsert_password(self, file_id: str, plain_password: str) -> None:
        async with get_session(self._session_factory) as session:
            try:
                await session.merge(FilePasswordORM(file_id=file_id, plain_password=plain_password))
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to store password for file {file_id}: {e}") from e

    async def delete_password(self, file_id: str) -> None:
        async with get_session(self._session_factory) as session:
            try:
                await session.execute(delete(FilePasswordORM).where(FilePasswordORM.file_id == file_id))
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to delete password for file {file_id}: {e}") from e

    async def get_plain_password(self, file_id: str) -> Optional[str]:
        async with get_session(self._session_factory) as session:
            res = await session.execute(
                select(FilePasswordORM.plain_password).where(FilePasswordORM.file_id == file_id)
            )
            return res.scalar_one_or_none()

    async def sum_size(self, s3_config_id: str, exclude_file_id: str | None = None) -> int:
        """Текущая занятость хранилища: SUM(size) по всем его файлам."""
        stmt = select(func.coalesce(func.sum(FileORM.size), 0)).where(FileORM.s3_config_id == s3_config_id)
        if exclude_file_id:
            stmt = stmt.where(FileORM.id != exclude_file_id)
        async with get_session(self._session_factory) as session:
            res = await session.execute(stmt)
            return int(res.scalar_one() or 0)
