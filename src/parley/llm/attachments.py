"""Helpers for sending file attachments to providers."""

import base64
import mimetypes
from pathlib import Path

import structlog

from ..memory.models import HistoryEntry

logger = structlog.get_logger(__name__)


def load_attachment(entry: HistoryEntry) -> tuple[str, bytes] | None:
    """Read an entry's attachment.

    Missing or unreadable files are skipped with a warning so that one
    stale path does not break the whole conversation.

    Returns:
        Tuple of (media type, raw bytes), or None
    """
    if not entry.attachment_path:
        return None
    path = Path(entry.attachment_path)
    try:
        data = path.read_bytes()
    except OSError as e:
        logger.warning("attachment_unreadable", path=str(path), error=str(e))
        return None
    media_type = mimetypes.guess_type(entry.attachment_name or path.name)[0]
    return media_type or "application/octet-stream", data


def data_url(media_type: str, data: bytes) -> str:
    return f"data:{media_type};base64,{base64.b64encode(data).decode('ascii')}"


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")
