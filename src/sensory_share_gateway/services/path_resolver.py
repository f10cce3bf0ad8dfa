"""
Разрешение виртуальных путей API-ключа в префиксы ключей внутри бакета.

Ключ API ограничен basic_path (например /team/docs). Администратор монтирует
S3-конфигурации в виртуальные пути (/team -> config A). Чтобы понять, куда
в бакете пишет ключ, ищем самую длинную точку монтирования нужной конфигурации,
внутри которой лежит basic_path, и переводим остаток пути в префикс.
"""
import logging
import re
from typing import Iterable

from sensory_share_gateway.exceptions import PermissionDeniedError
from sensory_share_gateway.models import Mount, StorageConfig
from sensory_share_gateway.utils.files import split_name_and_ext, safe_file_name

logger = logging.getLogger(__name__)

# Тип монтирования, который API-ключ видит только при публичной S3-конфигурации
PUBLIC_ONLY_STORAGE_TYPE = "S3"


def normalize_path(path: str | None) -> str:
    """'/a/b/' -> '/a/b'; '', '/', '///' -> '/'. Ведущий слэш гарантирован."""
    if not path:
        return "/"
    stripped = path.strip().rstrip("/")
    if not stripped:
        return "/"
    return stripped if stripped.startswith("/") else "/" + stripped


def is_mount_accessible(basic_path: str, mount_path: str) -> bool:
    basic = normalize_path(basic_path)
    mount = normalize_path(mount_path)
    if basic == "/" or mount == "/":
        return True
    # точка монтирования совпадает с basic_path или лежит внутри него
    if mount == basic or mount.startswith(basic + "/"):
        return True
    # basic_path лежит внутри точки монтирования
    return basic.startswith(mount + "/")


def filter_accessible_mounts(basic_path: str, mounts: Iterable[Mount]) -> list[Mount]:
    hidden: list[str] = []
    accessible: list[Mount] = []
    for mount in mounts:
        if mount.storage_type == PUBLIC_ONLY_STORAGE_TYPE and not mount.is_public:
            hidden.append(mount.name)
            continue
        if is_mount_accessible(basic_path, mount.mount_path):
            accessible.append(mount)
    if hidden:
        logger.info(f"API key cannot access {len(hidden)} mount(s) backed by non-public storage: {', '.join(hidden)}")
    return accessible


def normalize_s3_sub_path(sub_path: str, as_directory: bool = True) -> str:
    """'/x//y' -> 'x/y/'. Корень превращается в пустой префикс."""
    collapsed = re.sub(r"/{2,}", "/", sub_path or "").lstrip("/")
    if not collapsed:
        return ""
    if as_directory and not collapsed.endswith("/"):
        collapsed += "/"
    return collapsed


def resolve_storage_prefix(basic_path: str, config: StorageConfig, mounts: Iterable[Mount]) -> str:
    """
    Префикс внутри бакета, под которым ключ с данным basic_path может писать в config.

    Корневой basic_path ничем не ограничен - префикс пустой. Если config не входит
    в доступные ключу точки монтирования, бросает PermissionDeniedError.
    """
    basic = normalize_path(basic_path)
    if basic == "/":
        return ""

    accessible = filter_accessible_mounts(basic, mounts)
    candidates = [m for m in accessible if m.storage_config_id == config.id]
    if not candidates:
        raise PermissionDeniedError("API key has no access to this storage configuration")

    candidates.sort(key=lambda m: len(normalize_path(m.mount_path)), reverse=True)
    for mount in candidates:
        mount_path = normalize_path(mount.mount_path)
        if mount_path == "/" or basic == mount_path or basic.startswith(mount_path + "/"):
            sub_path = basic if mount_path == "/" else basic[len(mount_path):]
            if not sub_path.startswith("/"):
                sub_path = "/" + sub_path
            return normalize_s3_sub_path(sub_path, as_directory=True)

    # ключ видит только вложенные точки монтирования - basic_path ничего не добавляет
    return ""


def normalize_custom_path(path: str | None) -> str:
    """Пользовательский каталог: 'a/b' -> 'a/b/', пусто -> ''."""
    if not path or not path.strip():
        return ""
    return normalize_s3_sub_path(path.strip(), as_directory=True)


def build_storage_key(
    prefix: str,
    config: StorageConfig,
    custom_path: str | None,
    filename: str,
    short_id: str,
    use_original_filename: bool = False,
) -> str:
    """prefix + default_folder + custom_path + [short_id-]safe_name + ext."""
    name, ext = split_name_and_ext(filename)
    safe_name = safe_file_name(name)
    leaf = safe_name + ext if use_original_filename else f"{short_id}-{safe_name}{ext}"
    key = prefix + config.folder_prefix + normalize_custom_path(custom_path) + leaf
    return key.lstrip("/")
