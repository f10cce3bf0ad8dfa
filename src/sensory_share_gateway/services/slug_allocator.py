import logging
import re
from typing import Callable, Protocol

from sensory_share_gateway.exceptions import ValidationError, ConflictError, SlugExhaustedError
from sensory_share_gateway.utils.files import generate_short_id

logger = logging.getLogger(__name__)

SLUG_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
MAX_ATTEMPTS = 10


class SlugLookup(Protocol):
    async def slug_exists(self, slug: str) -> bool: ...


class SlugAllocator:
    """
    Выбор публичного slug для файла. Только читает БД и ничего не резервирует:
    между allocate() и вставкой записи возможна гонка, её разрешает
    уникальный индекс files.slug.
    """

    def __init__(
        self,
        files: SlugLookup,
        id_factory: Callable[[int], str] = generate_short_id,
        length: int = 6,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self._files = files
        self._id_factory = id_factory
        self._length = length
        self._max_attempts = max_attempts

    async def allocate(self, custom_slug: str | None = None, override: bool = False) -> str:
        if custom_slug:
            if not SLUG_PATTERN.match(custom_slug):
                raise ValidationError("Slug may contain only letters, digits, '-' and '_'")
            if await self._files.slug_exists(custom_slug):
                if not override:
                    raise ConflictError("Slug is already taken, choose another one")
                logger.info(f"Slug '{custom_slug}' exists, override requested")
            return custom_slug

        for _ in range(self._max_attempts):
            candidate = self._id_factory(self._length)
            if not await self._files.slug_exists(candidate):
                return candidate
        raise SlugExhaustedError("Could not generate a unique slug, please retry")
