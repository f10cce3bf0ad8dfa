import logging

from sensory_share_gateway.exceptions import GatewayError
from sensory_share_gateway.repositories import (
    ApiKeyRepository,
    FileRepository,
    MountRepository,
    S3Repository,
    SettingsRepository,
    StorageConfigRepository,
)
from sensory_share_gateway.services import DirectoryCache, UploadService

logger = logging.getLogger(__name__)


class ShareGateway:
    """
    Единая точка доступа для HTTP-слоя и CLI.
    """

    def __init__(
        self,
        files: FileRepository,
        configs: StorageConfigRepository,
        mounts: MountRepository,
        settings: SettingsRepository,
        api_keys: ApiKeyRepository,
        store: S3Repository,
        cache: DirectoryCache,
        uploads: UploadService,
        engine=None,
    ):
        self.files = files
        self.configs = configs
        self.mounts = mounts
        self.settings = settings
        self.api_keys = api_keys
        self.store = store
        self.cache = cache
        self.uploads = uploads
        self._engine = engine

    async def check_connections(self) -> dict[str, str]:
        """
        Проверяет PostgreSQL и бакет каждой S3-конфигурации.
        Ключ результата для хранилищ: 's3:<имя конфигурации>'.
        """
        statuses = {}

        try:
            await self.configs.check_connection()
            statuses["postgres"] = "ok"
        except GatewayError as e:
            statuses["postgres"] = f"failed: {e}"
            return statuses

        for config in await self.configs.list_all():
            try:
                await self.store.check_connection(config)
                statuses[f"s3:{config.name}"] = "ok"
            except GatewayError as e:
                statuses[f"s3:{config.name}"] = f"failed: {e}"

        return statuses

    async def aclose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
