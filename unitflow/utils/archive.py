"""In-memory zip packaging for site archives and code artifacts."""

from __future__ import annotations

import io
import zipfile
from pathlib import Path
from typing import Mapping

# Entries never packed from a directory
SKIP_NAMES = {"__pycache__", ".DS_Store"}


def create_archive_from_text_map(files: Mapping[str, str], archive_name: str = "archive") -> bytes:
    """Zip ``{relative path: text}`` under a root folder named ``archive_name``."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for filename, content in files.items():
            zf.writestr(f"{archive_name}/{filename}", content)
    return buf.getvalue()


def create_archive_from_directory(directory: str | Path, archive_name: str | None = None) -> bytes:
    """Zip a directory tree under a root folder (defaults to the directory name)."""
    root = Path(directory)
    name = archive_name or root.name
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for item in sorted(root.rglob("*")):
            if not item.is_file() or any(p in SKIP_NAMES for p in item.relative_to(root).parts):
                continue
            zf.write(item, f"{name}/{item.relative_to(root).as_posix()}")
    return buf.getvalue()


def extract_archive_to_text_map(data: bytes) -> dict[str, str]:
    """Unzip into ``{relative path: text}``, stripping the root folder."""
    result: dict[str, str] = {}
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            parts = info.filename.split("/")
            clean = "/".join(parts[1:]) if len(parts) > 1 else info.filename
            result[clean] = zf.read(info).decode("utf-8")
    return result
