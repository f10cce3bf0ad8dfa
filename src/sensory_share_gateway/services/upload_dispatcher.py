"""
Передача байтов в хранилище. У провайдеров разные причуды, поэтому для
каждого ProviderType есть своя стратегия с одним интерфейсом upload().
Новый провайдер - новая стратегия в реестре, вызывающий код не меняется.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

import urllib3
from urllib3.exceptions import HTTPError

from sensory_share_gateway.exceptions import UpstreamTransferError
from sensory_share_gateway.models import ProviderType, StorageConfig
from sensory_share_gateway.repositories.s3_repository import S3Repository
from sensory_share_gateway.utils.files import mimetype_from_filename
from sensory_share_gateway.utils.aio import run_io_bound

logger = logging.getLogger(__name__)


def clean_content_type(value: Optional[str]) -> Optional[str]:
    """'text/plain; charset=utf-8' -> 'text/plain'."""
    if not value:
        return None
    return value.split(";", 1)[0].strip() or None


def resolve_content_type(filename: str, declared: Optional[str] = None) -> str:
    """Content-Type всегда выводится из имени файла; заявленный клиентом только логируется."""
    inferred = mimetype_from_filename(filename)
    declared = clean_content_type(declared)
    if declared and declared != inferred:
        logger.debug(f"Ignoring client content type {declared!r} for {filename!r}, using {inferred!r}")
    return inferred


class UploadStrategy(ABC):
    name: str = "abstract"

    @abstractmethod
    async def upload(
        self, store: S3Repository, config: StorageConfig, key: str, data: bytes, content_type: str
    ) -> Optional[str]:
        """Загружает объект и возвращает ETag без кавычек (или None)."""


class SdkPutStrategy(UploadStrategy):
    """Обычный put_object через SDK. R2, Aliyun OSS, AWS S3 и всё прочее."""

    name = "sdk-put"

    async def upload(self, store, config, key, data, content_type):
        etag = await store.put_object(config, key, data, content_type)
        logger.info(f"{config.provider.value} upload done: key={key} etag={etag}")
        return etag


class PresignRelayStrategy(UploadStrategy):
    """
    B2 отвергает checksum-заголовки, которые SDK добавляет сам. Поэтому получаем
    presigned PUT URL и шлём голый HTTP PUT только с Content-Type/Content-Length.
    """

    name = "presign-relay"

    def __init__(self, http: urllib3.PoolManager | None = None):
        self._http = http or urllib3.PoolManager(retries=False)

    async def upload(self, store, config, key, data, content_type):
        url = await store.presign_put(config, key, content_type)
        headers = {"Content-Type": content_type, "Content-Length": str(len(data))}
        try:
            response = await run_io_bound(
                self._http.request, "PUT", url, body=data, headers=headers, retries=False
            )
        except HTTPError as e:
            raise UpstreamTransferError(f"Presigned upload to {config.provider.value} failed: {e}") from e

        if not 200 <= response.status < 300:
            body = response.data.decode("utf-8", errors="replace") if response.data else ""
            raise UpstreamTransferError(
                f"Presigned upload to {config.provider.value} failed ({response.status}): {body}",
                status=response.status,
                body=body,
            )

        etag = response.headers.get("ETag")
        etag = etag.replace('"', "") if etag else None
        logger.info(f"{config.provider.value} presigned upload done: key={key} etag={etag}")
        return etag


def default_strategies(http: urllib3.PoolManager | None = None) -> dict[ProviderType, UploadStrategy]:
    sdk = SdkPutStrategy()
    return {
        ProviderType.B2: PresignRelayStrategy(http),
        ProviderType.R2: sdk,
        ProviderType.ALIYUN_OSS: sdk,
        ProviderType.AWS: sdk,
        ProviderType.OTHER: sdk,
    }


class UploadDispatcher:
    """Выбирает стратегию по provider_type. Повторов нет: политика повторов снаружи."""

    def __init__(self, store: S3Repository, strategies: dict[ProviderType, UploadStrategy] | None = None):
        self._store = store
        self._strategies = strategies or default_strategies()

    def strategy_for(self, provider: ProviderType) -> UploadStrategy:
        return self._strategies.get(provider) or self._strategies[ProviderType.OTHER]

    async def put(self, config: StorageConfig, key: str, data: bytes, content_type: str) -> Optional[str]:
        strategy = self.strategy_for(config.provider)
        logger.info(
            f"Uploading to bucket={config.bucket_name} key={key} content_type={content_type} via {strategy.name}"
        )
        return await strategy.upload(self._store, config, key.lstrip("/"), data, content_type)
