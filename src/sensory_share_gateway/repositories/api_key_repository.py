# sensory_share_gateway/repositories/api_key_repository.py

import logging
import re
from datetime import datetime, timezone, timedelta
from typing import Optional, Any

from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from sensory_share_gateway.db import ApiKeyORM
from sensory_share_gateway.db.base import get_session
from sensory_share_gateway.exceptions import DatabaseError, NotFoundError, ValidationError, ConflictError
from sensory_share_gateway.models import ApiKeyCreate, ApiKeyInDB
from sensory_share_gateway.utils.files import generate_short_id
from sensory_share_gateway.utils.records import require_name, normalize_expiry

logger = logging.getLogger(__name__)

KEY_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


class ApiKeyRepository:
    """
    Записи API-ключей. Из записи на время запроса выводится ApiKeyScope
    (basic_path + флаги прав).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_by_key(self, key: str) -> Optional[ApiKeyInDB]:
        """Ищет ключ; просроченный ключ удаляется и считается отсутствующим."""
        if not key:
            return None
        async with get_session(self._session_factory) as session:
            res = await session.execute(select(ApiKeyORM).where(ApiKeyORM.key == key))
            orm = res.scalar_one_or_none()
            if orm is None:
                return None
            if orm.expires_at and orm.expires_at < datetime.now(timezone.utc):
                logger.info(f"API key {orm.id} expired, deleting")
                await session.execute(delete(ApiKeyORM).where(ApiKeyORM.id == orm.id))
                await session.commit()
                return None
            return ApiKeyInDB.model_validate(orm)

    async def touch_last_used(self, key_id: str) -> None:
        async with get_session(self._session_factory) as session:
            await session.execute(
                update(ApiKeyORM).where(ApiKeyORM.id == key_id).values(last_used=datetime.now(timezone.utc))
            )
            await session.commit()

    async def list_all(self) -> list[ApiKeyInDB]:
        async with get_session(self._session_factory) as session:
            await session.execute(delete(ApiKeyORM).where(ApiKeyORM.expires_at < datetime.now(timezone.utc)))
            await session.commit()
            res = await session.execute(select(ApiKeyORM).order_by(ApiKeyORM.created_at.desc()))
            return [ApiKeyInDB.model_validate(o) for o in res.scalars().all()]

    async def create(self, data: ApiKeyCreate) -> ApiKeyInDB:
        name = require_name(data.name, "API key name")
        if data.custom_key and not KEY_PATTERN.match(data.custom_key):
            raise ValidationError("API key may contain only letters, digits, '-' and '_'")

        if "expires_at" in data.model_fields_set:
            expires_at = normalize_expiry(data.expires_at)
        else:
            expires_at = datetime.now(timezone.utc) + timedelta(days=1)

        orm = ApiKeyORM(
            name=name,
            key=data.custom_key or generate_short_id(12),
            text_permission=data.text_permission is True,
            file_permission=data.file_permission is True,
            mount_permission=data.mount_permission is True,
            basic_path=data.basic_path or "/",
            expires_at=expires_at,
        )
        async with get_session(self._session_factory) as session:
            try:
                session.add(orm)
                await session.commit()
                await session.refresh(orm)
                return ApiKeyInDB.model_validate(orm)
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError("API key name or key already exists") from e

    async def update(self, key_id: str, patch: dict[str, Any]) -> ApiKeyInDB:
        """Sparse-обновление: пишутся только переданные поля."""
        values: dict[str, Any] = {}
        async with get_session(self._session_factory) as session:
            orm = (await session.execute(select(ApiKeyORM).where(ApiKeyORM.id == key_id))).scalar_one_or_none()
            if orm is None:
                raise NotFoundError("API key not found")

            if "name" in patch:
                name = require_name(patch["name"], "API key name")
                if name != orm.name:
                    taken = await session.execute(
                        select(ApiKeyORM.id).where(ApiKeyORM.name == name, ApiKeyORM.id != key_id)
                    )
                    if taken.scalar_one_or_none() is not None:
                        raise ConflictError("API key name already exists")
                values["name"] = name
            for flag in ("text_permission", "file_permission", "mount_permission"):
                if flag in patch:
                    values[flag] = bool(patch[flag])
            if "basic_path" in patch:
                values["basic_path"] = patch["basic_path"] or "/"
            if "expires_at" in patch:
                values["expires_at"] = normalize_expiry(patch["expires_at"])

            if not values:
                raise ValidationError("No updatable fields provided")

            try:
                res = await session.execute(
                    update(ApiKeyORM).where(ApiKeyORM.id == key_id).values(**values).returning(ApiKeyORM)
                )
                updated = res.scalar_one()
                await session.commit()
                return ApiKeyInDB.model_validate(updated)
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"Failed to update API key {key_id}: {e}") from e

    async def delete(self, key_id: str) -> None:
        async with get_session(self._session_factory) as session:
            res = await session.execute(delete(ApiKeyORM).where(ApiKeyORM.id == key_id))
            await session.commit()
            if res.rowcount == 0:
                raise NotFoundError("API key not found")
