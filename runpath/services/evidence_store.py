"""Local file storage for uploaded ticket evidence.

Files live under ``<DATA_DIR>/evidence/<ticket_id>/`` with a random storage
name that keeps the original extension. Evidence rows only remember the
download URL, so the store is addressed by ticket id and storage name.
"""

from __future__ import annotations

import mimetypes
import shutil
from pathlib import Path
from typing import IO
from uuid import uuid4

from ..core.config import settings
from ..core.errors import NotFound, ValidationFailed

ALLOWED_EVIDENCE_TYPES = {
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/gif",
    "image/webp",
    "application/pdf",
    "text/plain",
    "video/mp4",
    "video/webm",
}


def _ticket_dir(ticket_id: int, *, ensure: bool = False) -> Path:
    path = settings.evidence_dir / str(ticket_id)
    if ensure:
        path.mkdir(parents=True, exist_ok=True)
    return path


def download_url(ticket_id: int, storage_name: str) -> str:
    return f"/api/v1/tickets/{ticket_id}/evidence/files/{storage_name}"


def save_upload(ticket_id: int, filename: str | None, content_type: str | None, data: IO[bytes]) -> tuple[str, str]:
    """Copy an upload into the store.

    Returns ``(storage_name, safe_original_name)``. Raises ``ValidationFailed``
    for unsupported types or files over ``EVIDENCE_MAX_BYTES``.
    """

    content_type = (content_type or "").lower()
    if content_type not in ALLOWED_EVIDENCE_TYPES:
        raise ValidationFailed("Unsupported evidence file type")
    safe_name = Path(filename or "evidence").name or "evidence"
    ext = Path(safe_name).suffix
    storage_name = f"{uuid4().hex}{ext}" if ext else uuid4().hex
    dest = _ticket_dir(ticket_id, ensure=True) / storage_name

    data.seek(0)
    with dest.open("wb") as buffer:
        shutil.copyfileobj(data, buffer)
    if dest.stat().st_size > settings.EVIDENCE_MAX_BYTES:
        dest.unlink()
        raise ValidationFailed("Evidence file is too large")
    return storage_name, safe_name


def open_stored(ticket_id: int, storage_name: str) -> tuple[Path, str]:
    """Resolve a stored file to ``(path, media_type)``."""

    name = Path(storage_name or "").name
    path = _ticket_dir(ticket_id) / name
    if not name or not path.is_file():
        raise NotFound("Evidence file not found")
    media_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
    return path, media_type


def remove_ticket_files(ticket_id: int) -> None:
    shutil.rmtree(_ticket_dir(ticket_id), ignore_errors=True)


__all__ = [
    "ALLOWED_EVIDENCE_TYPES",
    "download_url",
    "open_stored",
    "remove_ticket_files",
    "save_upload",
]
