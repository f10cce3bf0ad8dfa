import mimetypes
import re
import secrets
import string

_ALPHABET = string.ascii_letters + string.digits
_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')
_SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]

# mimetypes знает не всё, что реально загружают
_EXTRA_TYPES = {
    ".md": "text/markdown",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".mkv": "video/x-matroska",
    ".flac": "audio/flac",
    ".7z": "application/x-7z-compressed",
}


def generate_short_id(length: int = 6) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def split_name_and_ext(filename: str) -> tuple[str, str]:
    """'report.final.pdf' -> ('report.final', '.pdf'); имя без точки - пустое расширение."""
    idx = filename.rfind(".")
    if idx <= 0:
        return filename, ""
    return filename[:idx], filename[idx:]


def safe_file_name(name: str, limit: int = 50) -> str:
    cleaned = _UNSAFE_CHARS.sub("_", name).strip()
    cleaned = re.sub(r"\s+", "_", cleaned)
    return cleaned[:limit]


def mimetype_from_filename(filename: str) -> str:
    _, ext = split_name_and_ext(filename)
    ext = ext.lower()
    if ext in _EXTRA_TYPES:
        return _EXTRA_TYPES[ext]
    guessed, _ = mimetypes.guess_type("file" + ext)
    return guessed or "application/octet-stream"


def format_file_size(num_bytes: int | float) -> str:
    size = float(max(num_bytes or 0, 0))
    for unit in _SIZE_UNITS:
        if size < 1024 or unit == _SIZE_UNITS[-1]:
            if unit == "B":
                return f"{int(size)} B"
            return f"{size:.2f} {unit}"
        size /= 1024
    return f"{size:.2f} TB"
