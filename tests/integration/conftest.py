import os

import docker
import pytest
import pytest_asyncio
from docker.errors import DockerException
from sqlalchemy.ext.asyncio import create_async_engine

from sensory_share_gateway import ShareGateway, create_gateway
from sensory_share_gateway.config import get_settings, reset_settings
from sensory_share_gateway.db import Base, StorageConfigORM
from sensory_share_gateway.utils.crypto import SecretCipher

ENCRYPTION_SECRET = "integration-secret"
BUCKET = "share-test"


def _docker_available() -> bool:
    try:
        docker.from_env().ping()
        return True
    except DockerException:
        return False


@pytest.fixture(scope="session")
def containers():
    """
    Поднимает PostgreSQL и MinIO один раз на сессию и выставляет переменные
    окружения, которые прочитает get_settings(). Без Docker тесты пропускаются.
    """
    if not _docker_available():
        pytest.skip("Docker is not available")

    from testcontainers.minio import MinioContainer
    from testcontainers.postgres import PostgresContainer

    postgres = PostgresContainer("postgres:15")
    minio = MinioContainer("minio/minio:latest", access_key="minioadmin", secret_key="minioadmin")
    postgres.start()
    minio.start()

    os.environ["POSTGRES__USER"] = postgres.username
    os.environ["POSTGRES__PASSWORD"] = postgres.password
    os.environ["POSTGRES__DB"] = postgres.dbname
    os.environ["POSTGRES__HOST"] = postgres.get_container_host_ip()
    os.environ["POSTGRES__PORT"] = str(postgres.get_exposed_port(5432))
    os.environ["GATEWAY__ENCRYPTION_SECRET"] = ENCRYPTION_SECRET
    reset_settings()

    client = minio.get_client()
    if not client.bucket_exists(bucket_name=BUCKET):
        client.make_bucket(bucket_name=BUCKET)

    endpoint = minio.get_config()["endpoint"].replace("http://", "")
    yield {"minio_endpoint": f"http://{endpoint}", "minio": client}

    postgres.stop()
    minio.stop()


@pytest_asyncio.fixture
async def db_engine(containers):
    """Таблицы создаются перед каждым тестом и удаляются после него."""
    engine = create_async_engine(get_settings().postgres.get_pg_dsn())
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def gateway(db_engine) -> ShareGateway:
    gw = create_gateway()
    yield gw
    await gw.aclose()


@pytest.fixture
def storage_factory(containers, gateway):
    """Регистрирует S3-конфигурацию, указывающую на тестовый MinIO."""
    cipher = SecretCipher(ENCRYPTION_SECRET)

    async def _create(**overrides):
        fields = dict(
            name="minio",
            provider_type="Other",
            endpoint_url=containers["minio_endpoint"],
            region="us-east-1",
            bucket_name=BUCKET,
            access_key_id="minioadmin",
            secret_access_key=cipher.encrypt("minioadmin"),
            path_style=True,
            default_folder="",
            is_public=True,
            is_default=True,
            admin_id="admin-1",
        )
        fields.update(overrides)
        return await gateway.configs.save(StorageConfigORM(**fields))

    return _create
