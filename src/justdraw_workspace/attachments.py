from __future__ import annotations

import asyncio
import base64
import mimetypes
from pathlib import Path
from typing import Protocol, runtime_checkable

from loguru import logger

from justdraw_workspace.errors import ReadFailure, SizeExceeded, UnsupportedType
from justdraw_workspace.models import Attachment, new_id

MAX_FILE_SIZE = 10 * 1024 * 1024
SUPPORTED_TYPES = ("image/*", "application/pdf", "text/*")


@runtime_checkable
class AttachmentSource(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def media_type(self) -> str: ...

    @property
    def size(self) -> int: ...

    async def read(self) -> bytes: ...


class LocalFile:
    def __init__(self, path: str | Path, media_type: str | None = None):
        self._path = Path(path)
        guessed, _ = mimetypes.guess_type(self._path.name)
        self._media_type = media_type or guessed or ""

    @property
    def name(self) -> str:
        return self._path.name

    @property
    def media_type(self) -> str:
        return self._media_type

    @property
    def size(self) -> int:
        try:
            return self._path.stat().st_size
        except OSError as ex:
            raise ReadFailure(self.name, str(ex)) from ex

    async def read(self) -> bytes:
        return await asyncio.to_thread(self._path.read_bytes)


class InMemoryFile:
    def __init__(self, name: str, media_type: str, content: bytes):
        self._name = name
        self._media_type = media_type
        self._content = content

    @property
    def name(self) -> str:
        return self._name

    @property
    def media_type(self) -> str:
        return self._media_type

    @property
    def size(self) -> int:
        return len(self._content)

    async def read(self) -> bytes:
        return self._content


def normalize_media_type(media_type: str) -> str:
    return media_type.split(";", 1)[0].strip().lower()


def is_supported_type(media_type: str) -> bool:
    normalized = normalize_media_type(media_type)
    for pattern in SUPPORTED_TYPES:
        if pattern.endswith("/*"):
            if normalized.startswith(pattern[:-1]):
                return True
        elif normalized == pattern:
            return True
    return False


def to_data_url(media_type: str, data: str) -> str:
    return f"data:{media_type};base64,{data}"


class AttachmentStore:
    """Pending attachments staged for the next user message."""

    def __init__(self, *, max_file_size: int = MAX_FILE_SIZE):
        self._max_file_size = max_file_size
        self._pending: list[Attachment] = []

    @property
    def pending(self) -> tuple[Attachment, ...]:
        return tuple(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def snapshot(self) -> tuple[Attachment, ...]:
        """Copy of the pending set, safe to keep after clear()."""
        return tuple(self._pending)

    async def add(self, file: AttachmentSource) -> Attachment:
        size = file.size
        if size > self._max_file_size:
            raise SizeExceeded(file.name, size, self._max_file_size)
        if not is_supported_type(file.media_type):
            raise UnsupportedType(file.name, file.media_type)

        try:
            content = await file.read()
        except Exception as ex:
            raise ReadFailure(file.name, str(ex)) from ex

        data = base64.b64encode(content).decode("ascii")
        is_image = normalize_media_type(file.media_type).startswith("image/")
        preview = to_data_url(file.media_type, data) if is_image else None
        attachment = Attachment(
            id=new_id(),
            name=file.name,
            media_type=file.media_type,
            size=size,
            data=data,
            preview=preview,
        )
        self._pending.append(attachment)
        logger.info(f"Attachment added: {file.name} ({size} bytes)")
        return attachment

    def remove(self, attachment_id: str) -> None:
        before = len(self._pending)
        self._pending = [a for a in self._pending if a.id != attachment_id]
        if len(self._pending) != before:
            logger.info(f"Attachment removed: {attachment_id}")

    def clear(self) -> None:
        self._pending = []
        logger.debug("Attachments cleared")
