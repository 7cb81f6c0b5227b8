"""Local file storage for synced pages.

Paths handed to storage are vault-relative and ``/``-separated
(``ConfluenceSync/Guides/Setup.md``).  ``LocalStorage`` maps them under a
root directory on disk; the ``Storage`` protocol lets tests substitute an
in-memory implementation.
"""

import logging
import os
import posixpath
from pathlib import Path
from typing import Protocol

from charset_normalizer import from_bytes

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """Normalise a vault-relative path.

    Backslashes become ``/``, duplicate and trailing separators collapse,
    ``.`` segments vanish and leading ``/`` is dropped.  ``..`` segments
    that would escape the root raise ``ValueError``.

    >>> normalize_path("ConfluenceSync\\\\Guides//Setup.md")
    'ConfluenceSync/Guides/Setup.md'
    """
    cleaned = path.replace("\\", "/").strip()
    cleaned = posixpath.normpath(cleaned.lstrip("/") or ".")
    if cleaned in ("", "."):
        return ""
    if cleaned.split("/")[0] == "..":
        raise ValueError(f"Path escapes the storage root: {path}")
    return cleaned


class Storage(Protocol):
    """Operations the sync engine needs from a file store."""

    def path_exists(self, path: str) -> bool: ...

    def create_folder(self, path: str) -> None: ...

    def create_file(self, path: str, content: str) -> None: ...

    def modify_file(self, path: str, content: str) -> None: ...

    def create_binary_file(self, path: str, data: bytes) -> None: ...

    def modify_binary_file(self, path: str, data: bytes) -> None: ...

    def read_text(self, path: str) -> str: ...

    def resolve_path(self, path: str) -> str: ...


class LocalStorage:
    """``Storage`` backed by a directory on the local file system.

    Args:
        root: Directory acting as the vault root.  Created if missing.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def resolve_path(self, path: str) -> str:
        """Return the absolute on-disk path for a vault-relative *path*."""
        return str(self._abs(path))

    def _abs(self, path: str) -> Path:
        relative = normalize_path(path)
        return self.root / relative if relative else self.root

    def path_exists(self, path: str) -> bool:
        return self._abs(path).exists()

    def create_folder(self, path: str) -> None:
        """Create one folder.  Existing folders are left alone."""
        target = self._abs(path)
        if target.is_dir():
            return
        target.mkdir(parents=True, exist_ok=True)
        logger.debug("Created folder %s", target)

    def create_file(self, path: str, content: str) -> None:
        target = self._abs(path)
        if target.exists():
            raise FileExistsError(f"File already exists: {path}")
        self._write(target, content.encode("utf-8"))

    def modify_file(self, path: str, content: str) -> None:
        target = self._abs(path)
        if not target.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        self._write(target, content.encode("utf-8"))

    def create_binary_file(self, path: str, data: bytes) -> None:
        target = self._abs(path)
        if target.exists():
            raise FileExistsError(f"File already exists: {path}")
        self._write(target, data)

    def modify_binary_file(self, path: str, data: bytes) -> None:
        target = self._abs(path)
        if not target.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        self._write(target, data)

    def read_text(self, path: str) -> str:
        """Read a text file, detecting its encoding.

        UTF-8 (with or without BOM) is tried first; other encodings are
        detected with charset_normalizer.

        Raises:
            FileNotFoundError: If the file does not exist.
            UnicodeDecodeError: If no encoding can be detected.
        """
        raw = self._abs(path).read_bytes()
        try:
            return raw.decode("utf-8-sig")
        except UnicodeDecodeError:
            pass

        best = from_bytes(raw).best()
        if best is None:
            raise UnicodeDecodeError(
                "unknown", raw[:1], 0, 1, f"cannot detect encoding of {path}"
            )
        logger.debug("Detected %s encoding for %s", best.encoding, path)
        return str(best)

    def _write(self, target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(f".{target.name}.tmp")
        with open(tmp, "wb") as fh:
            fh.write(data)
        os.replace(tmp, target)
