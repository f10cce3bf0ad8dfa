"""
Общие фикстуры. Для unit-тестов репозитории и хранилище заменены
in-memory подделками с теми же сигнатурами; Docker не нужен.
Интеграционные тесты (tests/integration) поднимают PostgreSQL и MinIO сами.
"""
import hashlib
import socket
import threading
from datetime import datetime, timezone, timedelta
from typing import Any, Optional

import pytest

from sensory_share_gateway.client import ShareGateway
from sensory_share_gateway.exceptions import ConflictError
from sensory_share_gateway.models import (
    ApiKeyInDB,
    ApiKeyScope,
    AuthType,
    FileRecord,
    Identity,
    Mount,
    StorageConfig,
)
from sensory_share_gateway.services import DirectoryCache, UploadDispatcher, UploadService

MIB = 1024 * 1024


class FakeFileRepository:
    def __init__(self):
        self.records: dict[str, FileRecord] = {}
        self.passwords: dict[str, str] = {}

    async def insert(self, **fields: Any) -> FileRecord:
        if await self.slug_exists(fields["slug"]):
            raise ConflictError(f"Slug '{fields['slug']}' is already taken")
        now = datetime.now(timezone.utc)
        record = FileRecord(**fields, created_at=now, updated_at=now)
        self.records[record.id] = record
        return record

    async def get(self, file_id: str) -> Optional[FileRecord]:
        return self.records.get(file_id)

    async def get_by_slug(self, slug: str) -> Optional[FileRecord]:
        return next((r for r in self.records.values() if r.slug == slug), None)

    async def slug_exists(self, slug: str) -> bool:
        return await self.get_by_slug(slug) is not None

    async def update(self, file_id: str, patch: dict[str, Any]) -> Optional[FileRecord]:
        record = self.records.get(file_id)
        if record is None:
            return None
        updated = record.model_copy(update={**patch, "updated_at": datetime.now(timezone.utc)})
        self.records[file_id] = updated
        return updated

    async def delete(self, file_id: str) -> bool:
        self.passwords.pop(file_id, None)
        return self.records.pop(file_id, None) is not None

    async def upsert_password(self, file_id: str, plain_password: str) -> None:
        self.passwords[file_id] = plain_password

    async def delete_password(self, file_id: str) -> None:
        self.passwords.pop(file_id, None)

    async def get_plain_password(self, file_id: str) -> Optional[str]:
        return self.passwords.get(file_id)

    async def sum_size(self, s3_config_id: str, exclude_file_id: str | None = None) -> int:
        return sum(
            r.size for r in self.records.values()
            if r.s3_config_id == s3_config_id and r.id != exclude_file_id
        )


class FakeConfigRepository:
    def __init__(self, configs: list[StorageConfig]):
        self.configs = {c.id: c for c in configs}

    async def check_connection(self):
        return None

    async def list_all(self) -> list[StorageConfig]:
        return list(self.configs.values())

    async def get(self, config_id: str) -> Optional[StorageConfig]:
        return self.configs.get(config_id)

    async def get_for_admin(self, config_id: str, admin_id: str) -> Optional[StorageConfig]:
        config = self.configs.get(config_id)
        return config if config and config.admin_id == admin_id else None

    async def get_public(self, config_id: str) -> Optional[StorageConfig]:
        config = self.configs.get(config_id)
        return config if config and config.is_public else None

    async def find_default(self, admin_id: str | None) -> Optional[StorageConfig]:
        return next((c for c in self._visible(admin_id) if c.is_default), None)

    async def find_any(self, admin_id: str | None) -> Optional[StorageConfig]:
        return next(iter(self._visible(admin_id)), None)

    def _visible(self, admin_id: str | None) -> list[StorageConfig]:
        if admin_id is not None:
            return [c for c in self.configs.values() if c.admin_id == admin_id]
        return [c for c in self.configs.values() if c.is_public]


class FakeMountRepository:
    def __init__(self, mounts: list[Mount] | None = None):
        self.mounts = mounts or []

    async def list_active(self) -> list[Mount]:
        return [m for m in self.mounts if m.is_active]


class FakeSettingsRepository:
    def __init__(self, max_upload_bytes: int = 100 * MIB):
        self.max_upload_bytes = max_upload_bytes

    async def get_max_upload_size_bytes(self) -> int:
        return self.max_upload_bytes


class FakeApiKeyRepository:
    def __init__(self, keys: list[ApiKeyInDB] | None = None):
        self.keys = {k.key: k for k in keys or []}
        self.touched: list[str] = []

    async def get_by_key(self, key: str) -> Optional[ApiKeyInDB]:
        return self.keys.get(key)

    async def touch_last_used(self, key_id: str) -> None:
        self.touched.append(key_id)


class FakeStore:
    """S3Repository без сети: объекты лежат в словаре (config_id, key) -> (bytes, content_type)."""

    def __init__(self):
        self.objects: dict[tuple[str, str], tuple[bytes, str]] = {}
        self.touched: list[str] = []
        self.fail_deletes = False

    async def check_connection(self, config: StorageConfig) -> None:
        return None

    async def presign_put(self, config: StorageConfig, key: str, content_type: str | None = None) -> str:
        return f"https://upload.test/{config.bucket_name}/{key}?signature=put"

    async def presign_get(self, config, key, filename=None, as_attachment=False, content_type=None,
                          enable_cache=True) -> str:
        disposition = "attachment" if as_attachment else "inline"
        return f"https://s3.test/{config.bucket_name}/{key}?disposition={disposition}"

    def build_public_url(self, config: StorageConfig, key: str) -> str:
        return f"https://s3.test/{config.bucket_name}/{key}"

    async def put_object(self, config: StorageConfig, key: str, data: bytes, content_type: str) -> str:
        self.objects[(config.id, key)] = (data, content_type)
        return hashlib.md5(data).hexdigest()

    async def delete_object(self, config: StorageConfig, key: str) -> bool:
        if self.fail_deletes:
            return False
        return self.objects.pop((config.id, key), None) is not None

    async def touch_ancestors(self, config: StorageConfig, key: str) -> None:
        self.touched.append(key)


# ――― данные ――― #

@pytest.fixture
def admin_config() -> StorageConfig:
    return StorageConfig(
        id="cfg-admin",
        name="admin bucket",
        provider_type="Cloudflare R2",
        endpoint_url="https://r2.test",
        bucket_name="private-bucket",
        access_key_id="ak",
        secret_access_key="encrypted",
        default_folder="uploads",
        is_default=True,
        admin_id="admin-1",
    )


@pytest.fixture
def public_config() -> StorageConfig:
    return StorageConfig(
        id="cfg-public",
        name="public bucket",
        provider_type="Other",
        endpoint_url="https://minio.test",
        bucket_name="public-bucket",
        access_key_id="ak",
        secret_access_key="encrypted",
        is_public=True,
        is_default=True,
    )


@pytest.fixture
def admin() -> Identity:
    return Identity(auth_type=AuthType.ADMIN, user_id="admin-1")


@pytest.fixture
def api_key_identity() -> Identity:
    return Identity(
        auth_type=AuthType.APIKEY,
        user_id="key-1",
        scope=ApiKeyScope(basic_path="/", file_permission=True),
    )


@pytest.fixture
def make_api_key():
    """Фабрика личностей API-ключа с заданным basic_path."""

    def _make(basic_path: str = "/", key_id: str = "key-1") -> Identity:
        return Identity(
            auth_type=AuthType.APIKEY,
            user_id=key_id,
            scope=ApiKeyScope(basic_path=basic_path, file_permission=True),
        )

    return _make


# ――― сборка сервиса ――― #

@pytest.fixture
def files() -> FakeFileRepository:
    return FakeFileRepository()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def configs(admin_config, public_config) -> FakeConfigRepository:
    return FakeConfigRepository([admin_config, public_config])


@pytest.fixture
def mounts() -> FakeMountRepository:
    return FakeMountRepository()


@pytest.fixture
def settings_repo() -> FakeSettingsRepository:
    return FakeSettingsRepository()


@pytest.fixture
def cache() -> DirectoryCache:
    return DirectoryCache()


@pytest.fixture
def uploads(files, configs, mounts, settings_repo, store, cache) -> UploadService:
    return UploadService(
        files=files,
        configs=configs,
        mounts=mounts,
        settings=settings_repo,
        store=store,
        dispatcher=UploadDispatcher(store),
        cache=cache,
    )


@pytest.fixture
def api_keys() -> FakeApiKeyRepository:
    return FakeApiKeyRepository([
        ApiKeyInDB(
            id="key-1",
            name="uploader",
            key="uploader-key",
            file_permission=True,
            basic_path="/",
            expires_at=datetime.now(timezone.utc) + timedelta(days=1),
        ),
        ApiKeyInDB(
            id="key-2",
            name="reader",
            key="reader-key",
            text_permission=True,
            basic_path="/",
            expires_at=datetime.now(timezone.utc) + timedelta(days=1),
        ),
    ])


@pytest.fixture
def gateway(files, configs, mounts, settings_repo, api_keys, store, cache, uploads) -> ShareGateway:
    return ShareGateway(
        files=files,
        configs=configs,
        mounts=mounts,
        settings=settings_repo,
        api_keys=api_keys,
        store=store,
        cache=cache,
        uploads=uploads,
    )


@pytest.fixture
def dropping_server():
    """
    HTTP-"сервер", который принимает соединение и сразу его закрывает.
    Отдаёт (base_url, accepted): accepted - список принятых соединений, по нему считают попытки.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(16)
    sock.settimeout(0.1)
    accepted: list[tuple[str, int]] = []
    stop = threading.Event()

    def _serve():
        while not stop.is_set():
            try:
                conn, peer = sock.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            accepted.append(peer)
            conn.close()

    thread = threading.Thread(target=_serve, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{sock.getsockname()[1]}", accepted
    stop.set()
    thread.join(timeout=2)
    sock.close()
