"""Text file access with encoding detection (UTF-8, UTF-8 with BOM, Shift-JIS)."""

from __future__ import annotations

import codecs
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal, get_args

from kotoori.exceptions import BinaryFileError

if TYPE_CHECKING:
    from datetime import datetime

logger = logging.getLogger(__name__)

TextEncoding = Literal["UTF-8", "UTF-8-BOM", "SHIFT-JIS"]

TEXT_ENCODINGS: tuple[str, ...] = get_args(TextEncoding)

_UTF8_BOM = b"\xef\xbb\xbf"
_BINARY_SNIFF_BYTES = 8192
_BINARY_MAGIC = (
    b"\x89PNG",
    b"\xff\xd8\xff",  # JPEG
    b"GIF8",
    b"%PDF",
    b"PK",  # ZIP, OOXML
    b"MZ",  # PE executables
)
_CONTROL_BYTES = frozenset([*range(0x09), *range(0x0E, 0x20)])
_CONTROL_THRESHOLD = 0.30
# Share of bytes that must look like Shift-JIS double-byte pairs
_SHIFT_JIS_THRESHOLD = 0.4


@dataclass(frozen=True)
class TextFile:
    """Decoded text file and the encoding it was stored in."""

    content: str
    encoding: TextEncoding


def _shift_jis_score(data: bytes) -> int:
    """Count bytes that form plausible Shift-JIS lead/trail pairs."""
    score = 0
    i = 0
    while i < len(data):
        lead = data[i]
        if (0x81 <= lead <= 0x9F or 0xE0 <= lead <= 0xEF) and i + 1 < len(data):
            trail = data[i + 1]
            if 0x40 <= trail <= 0x7E or 0x80 <= trail <= 0xFC:
                score += 2
                i += 2
                continue
        i += 1
    return score


def detect_encoding(data: bytes) -> TextEncoding:
    """Guess the encoding of *data*.

    A UTF-8 byte-order mark wins; otherwise valid UTF-8 is UTF-8, and
    invalid UTF-8 is Shift-JIS only if enough of it looks like Shift-JIS.
    """
    if data.startswith(_UTF8_BOM):
        return "UTF-8-BOM"
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        pass
    else:
        return "UTF-8"
    if _shift_jis_score(data) > len(data) * _SHIFT_JIS_THRESHOLD:
        return "SHIFT-JIS"
    return "UTF-8"


def decode_bytes(data: bytes, encoding: TextEncoding) -> str:
    """Decode *data*, replacing undecodable sequences."""
    if encoding == "UTF-8-BOM":
        return data.removeprefix(_UTF8_BOM).decode("utf-8", errors="replace")
    if encoding == "SHIFT-JIS":
        return data.decode("shift_jis", errors="replace")
    return data.decode("utf-8", errors="replace")


def encode_text(content: str, encoding: TextEncoding) -> bytes:
    """Encode *content*; characters Shift-JIS cannot represent become ``?``."""
    if encoding == "UTF-8-BOM":
        return _UTF8_BOM + content.encode("utf-8")
    if encoding == "SHIFT-JIS":
        return content.encode("shift_jis", errors="replace")
    return content.encode("utf-8")


def is_binary_bytes(data: bytes) -> bool:
    """Return True if *data* looks like a binary (non-text) file."""
    if not data:
        return False
    sample = data[:_BINARY_SNIFF_BYTES]
    if sample.startswith(_BINARY_MAGIC):
        return True
    try:
        # final=False tolerates a multi-byte character cut off by the slice
        codecs.getincrementaldecoder("utf-8")().decode(sample, final=False)
    except UnicodeDecodeError:
        pass
    else:
        return False
    if sample.count(0) > len(sample) // 100 + 1:
        return True
    control = sum(1 for byte in sample if byte in _CONTROL_BYTES)
    return control / len(sample) > _CONTROL_THRESHOLD


def read_text_file(path: Path, forced_encoding: TextEncoding | None = None) -> TextFile:
    """Read and decode a text file.

    Raises BinaryFileError for binary content and OSError for I/O failures.
    """
    data = path.read_bytes()
    if is_binary_bytes(data):
        raise BinaryFileError(f"Binary files cannot be opened as text: {path}")
    encoding = forced_encoding or detect_encoding(data)
    return TextFile(content=decode_bytes(data, encoding), encoding=encoding)


def write_text_file(path: Path, content: str, encoding: TextEncoding = "UTF-8") -> None:
    """Encode and write a text file, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(encode_text(content, encoding))
    logger.debug("Wrote %s (%s)", path, encoding)


def unique_file_path(path: Path, now: datetime) -> Path:
    """Return *path* if it is free, else the path with a timestamp suffix.

    ``novel.txt`` becomes ``novel_202610191230.txt``.
    """
    if not path.exists():
        return path
    stem = path.stem or "file"
    return path.with_name(f"{stem}_{now.strftime('%Y%m%d%H%M')}{path.suffix}")


def path_exists(path: str) -> bool:
    """Return whether *path* resolves to an existing file.

    Unlike ``os.path.exists`` this does not hide I/O errors: anything other
    than "no such file" propagates as OSError so the caller can tell a
    missing file from one it could not check.
    """
    try:
        os.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return False
    return True


def absolute_path(path: str) -> str:
    """Return the absolute, symlink-free form of *path*.

    This is the key a tracked file is stored under, so every spelling of the
    same file maps to one history.
    """
    return str(Path(path).resolve())


def existing_encoding(path: Path) -> TextEncoding | None:
    """Detect the encoding of the file at *path*, or None if there is none."""
    try:
        data = path.read_bytes()
    except (FileNotFoundError, IsADirectoryError):
        return None
    return detect_encoding(data)
