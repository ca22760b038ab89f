from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal
from uuid import uuid4

AgentAuthor = Literal["user", "agent", "system"]

_AUTHORS = {"user", "agent", "system"}


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds")


def new_id() -> str:
    return str(uuid4())


@dataclass(frozen=True)
class Attachment:
    id: str
    name: str
    media_type: str
    size: int
    data: str
    preview: str | None = None

    @property
    def is_image(self) -> bool:
        return self.media_type.strip().lower().startswith("image/")

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.media_type,
            "size": self.size,
            "data": self.data,
        }
        if self.preview is not None:
            payload["preview"] = self.preview
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Attachment:
        return cls(
            id=str(payload["id"]),
            name=str(payload["name"]),
            media_type=str(payload["type"]),
            size=int(payload["size"]),
            data=str(payload["data"]),
            preview=payload.get("preview"),
        )


@dataclass(frozen=True)
class AgentMessage:
    id: str
    agent_id: str
    author: AgentAuthor
    content: str
    timestamp: str
    attachments: tuple[Attachment, ...] = ()

    @classmethod
    def create(
        cls,
        agent_id: str,
        author: AgentAuthor,
        content: str,
        *,
        attachments: tuple[Attachment, ...] = (),
    ) -> AgentMessage:
        return cls(
            id=new_id(),
            agent_id=agent_id,
            author=author,
            content=content,
            timestamp=utc_now(),
            attachments=tuple(attachments),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "agentId": self.agent_id,
            "author": self.author,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.attachments:
            payload["attachments"] = [a.to_dict() for a in self.attachments]
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> AgentMessage:
        author = payload["author"]
        if author not in _AUTHORS:
            raise ValueError(f"Unknown message author: {author!r}")
        return cls(
            id=str(payload["id"]),
            agent_id=str(payload["agentId"]),
            author=author,
            content=str(payload["content"]),
            timestamp=str(payload["timestamp"]),
            attachments=tuple(Attachment.from_dict(a) for a in payload.get("attachments") or []),
        )


@dataclass(frozen=True)
class RecordingMetadataEntry:
    timestamp: str
    chat_messages: tuple[AgentMessage, ...] = ()
    canvas_diff: Any | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"timestamp": self.timestamp}
        if self.canvas_diff is not None:
            payload["canvasDiff"] = self.canvas_diff
        payload["chatMessages"] = [m.to_dict() for m in self.chat_messages]
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> RecordingMetadataEntry:
        return cls(
            timestamp=str(payload["timestamp"]),
            chat_messages=tuple(AgentMessage.from_dict(m) for m in payload.get("chatMessages") or []),
            canvas_diff=payload.get("canvasDiff"),
        )


@dataclass(frozen=True)
class Recording:
    id: str
    start_time: str
    name: str | None = None
    metadata: tuple[RecordingMetadataEntry, ...] = ()
    end_time: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", tuple(self.metadata))

    @property
    def is_finalized(self) -> bool:
        return self.end_time is not None

    @property
    def display_name(self) -> str:
        return self.name or f"Recording {self.id[:8]}"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id}
        if self.name:
            payload["name"] = self.name
        payload["metadata"] = [entry.to_dict() for entry in self.metadata]
        payload["startTime"] = self.start_time
        if self.end_time is not None:
            payload["endTime"] = self.end_time
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Recording:
        return cls(
            id=str(payload["id"]),
            name=payload.get("name"),
            metadata=tuple(RecordingMetadataEntry.from_dict(e) for e in payload.get("metadata") or []),
            start_time=str(payload["startTime"]),
            end_time=payload.get("endTime"),
        )


@dataclass(frozen=True)
class CanvasElement:
    id: str
    kind: str
    x: float
    y: float
    properties: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind,
            "x": self.x,
            "y": self.y,
            "props": dict(self.properties),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> CanvasElement:
        return cls(
            id=str(payload["id"]),
            kind=str(payload.get("type", "geo")),
            x=float(payload.get("x", 0)),
            y=float(payload.get("y", 0)),
            properties=dict(payload.get("props") or {}),
        )
