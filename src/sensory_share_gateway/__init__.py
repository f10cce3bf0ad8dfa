# Файл: src/sensory_share_gateway/__init__.py

from typing import Optional
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from .client import ShareGateway
from .config import get_settings, GatewayClientConfig, GatewayConfig, PostgresConfig
from .repositories import (
    ApiKeyRepository,
    FileRepository,
    MountRepository,
    S3Repository,
    SettingsRepository,
    StorageConfigRepository,
)
from .services import DirectoryCache, QuotaGuard, SlugAllocator, UploadDispatcher, UploadService
from .utils.crypto import SecretCipher

from .exceptions import *


def create_gateway(config: Optional[GatewayClientConfig] = None) -> ShareGateway:
    """
    Фабрика ShareGateway.

    :param config: Единый объект с настройками.
                   Если не передан, настройки читаются из окружения (.env).
    :raises ConfigurationError: если не задан ключ шифрования секретов хранилищ.
    """
    if config is None:
        s = get_settings()
        config = GatewayClientConfig(postgres=s.postgres, gateway=s.gateway)

    # без явного ключа шифрования не стартуем
    cipher = SecretCipher(config.gateway.require_encryption_secret())

    engine = create_async_engine(
        config.postgres.get_pg_dsn(),
        pool_size=config.postgres.pool_size,
        max_overflow=config.postgres.max_overflow,
        pool_timeout=config.postgres.pool_timeout,
        pool_recycle=config.postgres.pool_recycle,
        pool_pre_ping=config.postgres.pool_pre_ping,
        connect_args={
            "server_settings": {
                "application_name": config.postgres.application_name
            }
        }
    )
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    files = FileRepository(session_factory)
    configs = StorageConfigRepository(session_factory)
    mounts = MountRepository(session_factory)
    settings = SettingsRepository(session_factory, default_max_upload_mb=config.gateway.default_max_upload_mb)
    api_keys = ApiKeyRepository(session_factory)
    store = S3Repository(cipher, url_cache_ttl=config.gateway.presign_cache_ttl)
    cache = DirectoryCache()

    uploads = UploadService(
        files=files,
        configs=configs,
        mounts=mounts,
        settings=settings,
        store=store,
        dispatcher=UploadDispatcher(store),
        cache=cache,
        slugs=SlugAllocator(
            files,
            length=config.gateway.short_id_length,
            max_attempts=config.gateway.slug_attempts,
        ),
        quota=QuotaGuard(files),
        short_id_length=config.gateway.short_id_length,
    )

    return ShareGateway(
        files=files,
        configs=configs,
        mounts=mounts,
        settings=settings,
        api_keys=api_keys,
        store=store,
        cache=cache,
        uploads=uploads,
        engine=engine,
    )


__all__ = [
    "ShareGateway", "create_gateway",
    "GatewayClientConfig", "GatewayConfig", "PostgresConfig",
    "GatewayError", "ConfigurationError", "DatabaseError", "ValidationError", "ConflictError",
    "PermissionDeniedError", "NotFoundError", "CapacityError", "SlugExhaustedError",
    "UpstreamTransferError",
]
