import logging
from dataclasses import dataclass
from typing import Protocol

from sensory_share_gateway.exceptions import CapacityError
from sensory_share_gateway.models import StorageConfig
from sensory_share_gateway.utils.files import format_file_size

logger = logging.getLogger(__name__)


class UsageSource(Protocol):
    async def sum_size(self, s3_config_id: str, exclude_file_id: str | None = None) -> int: ...


@dataclass(frozen=True)
class Admission:
    admitted: bool
    usage: int
    requested: int
    total: int | None

    @property
    def remaining(self) -> int:
        if self.total is None:
            return 0
        return max(0, self.total - self.usage)

    def to_error(self, suffix: str = "") -> CapacityError:
        remaining = format_file_size(self.remaining)
        requested = format_file_size(self.requested)
        total = format_file_size(self.total or 0)
        message = (
            f"Insufficient storage space. File size ({requested}) exceeds the remaining space ({remaining}). "
            f"Bucket capacity limit is {total}."
        )
        if suffix:
            message = f"{message} {suffix}"
        return CapacityError(message, remaining=remaining, requested=requested, total=total)


class QuotaGuard:
    """
    Проверка ёмкости S3-конфигурации по живому SUM(size).
    Не атомарна с самой загрузкой: два параллельных запроса могут вместе
    превысить лимит. Поэтому проверок две - до передачи и при commit.
    """

    def __init__(self, files: UsageSource):
        self._files = files

    async def check(self, config: StorageConfig, incoming_size: int, exclude_file_id: str | None = None) -> Admission:
        requested = max(int(incoming_size or 0), 0)
        if config.total_storage_bytes is None:
            return Admission(True, 0, requested, None)
        usage = await self._files.sum_size(config.id, exclude_file_id=exclude_file_id)
        admitted = usage + requested <= config.total_storage_bytes
        if not admitted:
            logger.info(
                f"Quota rejected for config {config.id}: usage={usage} requested={requested} "
                f"total={config.total_storage_bytes}"
            )
        return Admission(admitted, usage, requested, config.total_storage_bytes)

    async def admit(self, config: StorageConfig, incoming_size: int, exclude_file_id: str | None = None) -> Admission:
        admission = await self.check(config, incoming_size, exclude_file_id)
        if not admission.admitted:
            raise admission.to_error()
        return admission


def check_upload_limit(size: int, max_bytes: int) -> None:
    """Системный лимит на размер одного файла (system_settings.max_upload_size)."""
    if size and size > max_bytes:
        raise CapacityError(
            f"File size exceeds the system limit: maximum {format_file_size(max_bytes)}, "
            f"got {format_file_size(size)}",
            requested=format_file_size(size),
            total=format_file_size(max_bytes),
        )
