import logging
import time
from io import BytesIO
from datetime import timedelta
from typing import Optional
from urllib.parse import urlsplit, quote

from minio import Minio
from minio.commonconfig import CopySource, REPLACE
from minio.error import MinioException, S3Error
from urllib3 import PoolManager
from urllib3.exceptions import HTTPError

from sensory_share_gateway.exceptions import UpstreamTransferError
from sensory_share_gateway.models import StorageConfig, ProviderType
from sensory_share_gateway.utils.crypto import SecretCipher
from sensory_share_gateway.utils.aio import run_io_bound

logger = logging.getLogger(__name__)

# S3Error - ответ хранилища; остальное - сетевые сбои и 5xx, на которых minio сдаётся сам
UPSTREAM_ERRORS = (MinioException, HTTPError)


def _strip_quotes(etag: str | None) -> str | None:
    if not etag:
        return None
    return etag.replace('"', "")


class S3Repository:
    """
    Доступ к S3-совместимым хранилищам. Один Minio-клиент на конфигурацию;
    секретный ключ конфигурации хранится зашифрованным и расшифровывается здесь.
    """

    def __init__(self, cipher: SecretCipher, url_cache_ttl: int = 300, http_client: PoolManager | None = None):
        self._cipher = cipher
        self._http_client = http_client
        self._clients: dict[tuple[str, str, str], Minio] = {}
        self._url_cache: dict[tuple, tuple[float, str]] = {}
        self._url_cache_ttl = url_cache_ttl

    # ――― clients ――― #

    def client_for(self, config: StorageConfig) -> Minio:
        cache_key = (config.id, config.access_key_id, config.secret_access_key)
        client = self._clients.get(cache_key)
        if client is not None:
            return client

        parts = urlsplit(config.endpoint_url if "://" in config.endpoint_url else f"https://{config.endpoint_url}")
        client = Minio(
            endpoint=parts.netloc,
            access_key=config.access_key_id,
            secret_key=self._cipher.decrypt(config.secret_access_key),
            secure=parts.scheme == "https",
            region=config.region or None,
            http_client=self._http_client,
        )
        if config.path_style:
            client.disable_virtual_style_endpoint()
        elif config.provider in (ProviderType.AWS, ProviderType.ALIYUN_OSS):
            client.enable_virtual_style_endpoint()
        self._clients[cache_key] = client
        return client

    async def check_connection(self, config: StorageConfig) -> None:
        """Проверяет соединение с хранилищем и наличие бакета."""
        logger.debug(f"Checking bucket '{config.bucket_name}' for config {config.id}...")
        try:
            exists = await run_io_bound(self.client_for(config).bucket_exists, bucket_name=config.bucket_name)
        except UPSTREAM_ERRORS as e:
            raise UpstreamTransferError(f"Storage connection failed: {e}") from e
        if not exists:
            raise UpstreamTransferError(f"Bucket '{config.bucket_name}' does not exist")

    # ――― presigned urls ――― #

    async def presign_put(self, config: StorageConfig, key: str, content_type: str | None = None) -> str:
        # minio не подписывает Content-Type для PUT, клиент обязан прислать тот же заголовок сам
        try:
            return await run_io_bound(
                self.client_for(config).presigned_put_object,
                bucket_name=config.bucket_name,
                object_name=key.lstrip("/"),
                expires=timedelta(seconds=config.signature_expires_in),
            )
        except UPSTREAM_ERRORS as e:
            raise UpstreamTransferError(f"Failed to presign upload: {e}") from e

    async def presign_get(
        self,
        config: StorageConfig,
        key: str,
        filename: Optional[str] = None,
        as_attachment: bool = False,
        content_type: Optional[str] = None,
        enable_cache: bool = True,
    ) -> str:
        cache_key = (config.id, key, filename, as_attachment, content_type)
        if enable_cache:
            cached = self._url_cache.get(cache_key)
            if cached and cached[0] > time.monotonic():
                return cached[1]

        response_headers = {}
        disposition_name = quote(filename or key.rsplit("/", 1)[-1])
        disposition = "attachment" if as_attachment else "inline"
        response_headers["response-content-disposition"] = f"{disposition}; filename*=UTF-8''{disposition_name}"
        if content_type:
            response_headers["response-content-type"] = content_type

        try:
            url = await run_io_bound(
                self.client_for(config).presigned_get_object,
                bucket_name=config.bucket_name,
                object_name=key.lstrip("/"),
                expires=timedelta(seconds=config.signature_expires_in),
                response_headers=response_headers,
            )
        except UPSTREAM_ERRORS as e:
            raise UpstreamTransferError(f"Failed to presign download: {e}") from e

        if enable_cache:
            ttl = min(self._url_cache_ttl, config.signature_expires_in // 2)
            now = time.monotonic()
            self._evict_expired_urls(now)
            self._url_cache[cache_key] = (now + ttl, url)
        return url

    def _evict_expired_urls(self, now: float) -> None:
        for stale in [k for k, (expires_at, _) in self._url_cache.items() if expires_at <= now]:
            del self._url_cache[stale]

    def build_public_url(self, config: StorageConfig, key: str) -> str:
        """Абсолютный (не подписанный) URL объекта."""
        object_path = quote(key.lstrip("/"), safe="/")
        if config.custom_host:
            return f"{config.custom_host.rstrip('/')}/{object_path}"
        endpoint = config.endpoint_url if "://" in config.endpoint_url else f"https://{config.endpoint_url}"
        parts = urlsplit(endpoint)
        if config.path_style:
            return f"{parts.scheme}://{parts.netloc}/{config.bucket_name}/{object_path}"
        return f"{parts.scheme}://{config.bucket_name}.{parts.netloc}/{object_path}"

    # ――― objects ――― #

    async def put_object(self, config: StorageConfig, key: str, data: bytes, content_type: str) -> str | None:
        try:
            result = await run_io_bound(
                self.client_for(config).put_object,
                bucket_name=config.bucket_name,
                object_name=key.lstrip("/"),
                data=BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except UPSTREAM_ERRORS as e:
            raise UpstreamTransferError(f"Storage upload failed: {e}") from e
        return _strip_quotes(result.etag)

    async def get_object(self, config: StorageConfig, key: str) -> bytes:
        try:
            resp = await run_io_bound(
                self.client_for(config).get_object, bucket_name=config.bucket_name, object_name=key.lstrip("/")
            )
            data = resp.read()
            resp.close()
            resp.release_conn()
            return data
        except UPSTREAM_ERRORS as e:
            raise UpstreamTransferError(str(e)) from e

    async def delete_object(self, config: StorageConfig, key: str) -> bool:
        """Удаляет объект. Никогда не бросает: False означает, что удалить не удалось."""
        try:
            await run_io_bound(
                self.client_for(config).remove_object, bucket_name=config.bucket_name, object_name=key.lstrip("/")
            )
            return True
        except Exception as e:
            logger.warning(f"Failed to delete object '{key}' from bucket '{config.bucket_name}': {e}")
            return False

    async def touch_ancestors(self, config: StorageConfig, key: str) -> None:
        """
        Обновляет время изменения у всех родительских "папок" ключа.
        Папка - это объект-маркер 'a/b/'; отсутствующие маркеры не создаются.
        Ошибки хранилища только логируются: загрузка к этому моменту уже состоялась.
        """
        segments = key.lstrip("/").split("/")[:-1]
        client = self.client_for(config)
        for depth in range(1, len(segments) + 1):
            marker = "/".join(segments[:depth]) + "/"
            try:
                await run_io_bound(client.stat_object, bucket_name=config.bucket_name, object_name=marker)
            except S3Error as e:
                if e.code not in ("NoSuchKey", "NoSuchObject", "ResourceNotFound"):
                    logger.warning(f"Failed to stat directory marker '{marker}': {e}")
                continue
            except UPSTREAM_ERRORS as e:
                logger.warning(f"Failed to stat directory marker '{marker}': {e}")
                continue
            try:
                await run_io_bound(
                    client.copy_object,
                    bucket_name=config.bucket_name,
                    object_name=marker,
                    source=CopySource(config.bucket_name, marker),
                    metadata={"x-amz-meta-touched-at": str(int(time.time()))},
                    metadata_directive=REPLACE,
                )
            except UPSTREAM_ERRORS as e:
                logger.warning(f"Failed to touch directory marker '{marker}': {e}")
