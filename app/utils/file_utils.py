import base64
import binascii
import re
from pathlib import Path
from typing import Iterable, List

_DATA_URI_PREFIX = re.compile(r"^data:[^;,]*;base64,", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_PAGE_INDEX = re.compile(r"(\d+)(?=\D*$)")


def decode_base64_payload(value: str) -> bytes:
    """
    Decode a standard base64 payload strictly.

    Whitespace and an optional ``data:<mime>;base64,`` prefix are removed;
    any other character outside the base64 alphabet, or bad padding, raises
    ValueError.
    """
    cleaned = _WHITESPACE.sub("", _DATA_URI_PREFIX.sub("", value.strip()))
    if not cleaned:
        raise ValueError("payload is empty")
    try:
        decoded = base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(f"invalid base64 data: {exc}") from exc
    if not decoded:
        raise ValueError("payload is empty")
    return decoded


def file_extension(filename: str) -> str:
    """Lower-case extension including the dot, or an empty string."""
    return Path(filename or "").suffix.lower()


def base_name(filename: str) -> str:
    stem = Path(filename or "").stem
    return stem or "document"


def page_index(path: Path) -> int:
    """Page number embedded in a file name: ``page-10.jpg`` -> 10."""
    match = _PAGE_INDEX.search(path.stem)
    if not match:
        raise ValueError(f"no page number in file name: {path.name}")
    return int(match.group(1))


def sorted_page_files(paths: Iterable[Path]) -> List[Path]:
    """Order files by their numeric page index instead of lexically."""
    return sorted(paths, key=page_index)
