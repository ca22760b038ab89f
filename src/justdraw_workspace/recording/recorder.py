from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import Any, Literal

from loguru import logger

from justdraw_workspace.models import AgentMessage, Recording, RecordingMetadataEntry, new_id, utc_now
from justdraw_workspace.recording.archive import RecordingArchive
from justdraw_workspace.transcript import TranscriptStore

RecorderState = Literal["idle", "armed"]

MAX_MESSAGES_PER_ENTRY = 5


class Recorder:
    """Captures (canvas mutation, chat slice) entries while armed.

    One entry is written per observed canvas-mutation batch. Chat messages
    appended since the previous entry ride along with it, keeping only the
    most recent ``max_messages_per_entry``.
    """

    def __init__(
        self,
        transcript: TranscriptStore,
        archive: RecordingArchive,
        *,
        max_messages_per_entry: int = MAX_MESSAGES_PER_ENTRY,
        clock: Callable[[], str] = utc_now,
    ):
        self._transcript = transcript
        self._archive = archive
        self._max_messages = max(1, max_messages_per_entry)
        self._clock = clock
        self._current: Recording | None = None
        self._entries: list[RecordingMetadataEntry] = []
        self._pending_messages: list[AgentMessage] = []

    @property
    def state(self) -> RecorderState:
        return "armed" if self._current is not None else "idle"

    @property
    def is_armed(self) -> bool:
        return self._current is not None

    @property
    def current(self) -> Recording | None:
        """The recording in progress, with the entries captured so far."""
        if self._current is None:
            return None
        return replace(self._current, metadata=tuple(self._entries))

    def start(self, name: str | None = None) -> Recording | None:
        if self._current is not None:
            logger.debug("Recorder already armed; ignoring start")
            return None
        self._current = Recording(id=new_id(), name=name or None, start_time=self._clock())
        self._entries = []
        self._pending_messages = []
        self._transcript.add_listener(self._on_messages)
        logger.info(f"Recording started: {self._current.id}")
        return self._current

    def stop(self) -> Recording | None:
        if self._current is None:
            logger.debug("Recorder idle; ignoring stop")
            return None

        self._transcript.remove_listener(self._on_messages)
        if self._pending_messages:
            self._write_entry(None)
        recording = replace(self._current, metadata=tuple(self._entries), end_time=self._clock())
        self._current = None
        self._entries = []
        self._pending_messages = []
        self._archive.add(recording)
        logger.info(f"Recording stopped: {recording.id} ({len(recording.metadata)} entries)")
        return recording

    def observe_canvas_mutation(self, snapshot: Any) -> None:
        if self._current is None:
            return
        self._write_entry(snapshot)

    def _on_messages(self, messages: tuple[AgentMessage, ...]) -> None:
        if self._current is None:
            return
        self._pending_messages.extend(messages)
        overflow = len(self._pending_messages) - self._max_messages
        if overflow > 0:
            del self._pending_messages[:overflow]

    def _write_entry(self, snapshot: Any) -> None:
        assert self._current is not None
        entry = RecordingMetadataEntry(
            timestamp=self._clock(),
            chat_messages=tuple(self._pending_messages),
            canvas_diff=snapshot,
        )
        self._entries.append(entry)
        self._pending_messages = []
        logger.debug(
            f"Recording entry captured: recording={self._current.id}, step={len(self._entries)}, "
            f"messages={len(entry.chat_messages)}"
        )
