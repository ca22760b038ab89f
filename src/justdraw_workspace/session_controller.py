from __future__ import annotations

import base64
import binascii
import json
import time
from collections.abc import Callable
from typing import Any

from loguru import logger

from justdraw_workspace.agents import AgentProfile, AgentRegistry, ModelCatalog
from justdraw_workspace.attachments import MAX_FILE_SIZE, AttachmentSource, AttachmentStore, InMemoryFile
from justdraw_workspace.canvas import IMAGE_MEDIA_TYPES, CanvasCollaborator
from justdraw_workspace.errors import AttachmentError, ExportFailure
from justdraw_workspace.models import AgentMessage, Attachment, Recording
from justdraw_workspace.recording import Recorder, RecordingArchive, ReplayEngine
from justdraw_workspace.recording.archive import DEFAULT_CAPACITY
from justdraw_workspace.recording.recorder import MAX_MESSAGES_PER_ENTRY
from justdraw_workspace.recording.replay import DEFAULT_STEP_SECONDS
from justdraw_workspace.replies import ReplyGenerator
from justdraw_workspace.scheduling import Scheduler
from justdraw_workspace.storage import KeyValueStore
from justdraw_workspace.transcript import TranscriptStore

DownloadSink = Callable[[str, bytes], None]


def build_refine_prompt(context_type: str, elements: list[dict[str, Any]]) -> str:
    elements_json = json.dumps(elements, indent=2)
    return (
        f"Refine this hand-drawn {context_type} into a neat, balanced representation using appropriate "
        f"library icons/widgets. Elements: {elements_json}. Output JSON with shapes, positions, icon "
        f"references from libraries."
    )


class WorkspaceSession:
    """Per-agent conversation state plus the recorder and replay engine.

    The conversation mode is always active; recording is an orthogonal arm
    flag. Recording and replay never run at the same time since both touch
    the canvas document.
    """

    def __init__(
        self,
        *,
        storage: KeyValueStore,
        agents: AgentRegistry,
        catalog: ModelCatalog,
        reply_generator: ReplyGenerator,
        scheduler: Scheduler,
        canvas: CanvasCollaborator | None = None,
        download_sink: DownloadSink | None = None,
        snapshot_format: str = "svg",
        replay_step_seconds: float = DEFAULT_STEP_SECONDS,
        recording_capacity: int = DEFAULT_CAPACITY,
        max_messages_per_entry: int = MAX_MESSAGES_PER_ENTRY,
        max_file_size: int = MAX_FILE_SIZE,
    ):
        self._agents = agents
        self._catalog = catalog
        self._reply_generator = reply_generator
        self._canvas = canvas
        self._download_sink = download_sink
        self._snapshot_format = snapshot_format
        self._active_agent_id: str | None = None
        self._composer_value = ""

        self.attachments = AttachmentStore(max_file_size=max_file_size)
        self.transcript = TranscriptStore(storage, agents, catalog)
        self.archive = RecordingArchive(storage, capacity=recording_capacity)
        self.recorder = Recorder(self.transcript, self.archive, max_messages_per_entry=max_messages_per_entry)
        self.replay = ReplayEngine(
            canvas,
            scheduler,
            step_seconds=replay_step_seconds,
            max_messages_per_entry=max_messages_per_entry,
        )

    @property
    def active_agent_id(self) -> str | None:
        return self._active_agent_id

    @property
    def active_agent(self) -> AgentProfile | None:
        if self._active_agent_id is None or self.transcript.agent_id != self._active_agent_id:
            return None
        return self._agents.get(self._active_agent_id)

    @property
    def composer_value(self) -> str:
        return self._composer_value

    def set_composer_value(self, value: str) -> None:
        self._composer_value = value

    @property
    def messages(self) -> tuple[AgentMessage, ...]:
        return self.transcript.messages

    @property
    def pending_attachments(self) -> tuple[Attachment, ...]:
        return self.attachments.pending

    @property
    def is_recording(self) -> bool:
        return self.recorder.is_armed

    @property
    def recordings(self) -> tuple[Recording, ...]:
        return self.archive.list()

    def select_agent(self, agent_id: str) -> bool:
        previous = self._active_agent_id
        self._active_agent_id = agent_id
        self._composer_value = ""
        hydrated = self.transcript.hydrate(agent_id)
        if hydrated:
            logger.info(f"Active agent selected: {agent_id} (previous={previous or '-'})")
        return hydrated

    def restore_transcript(self) -> int:
        agent = self.active_agent
        if agent is None:
            logger.warning("Cannot restore transcript without active agent")
            return 0
        return len(self.transcript.load(agent.id))

    async def add_attachment(self, file: AttachmentSource) -> Attachment:
        return await self.attachments.add(file)

    def remove_attachment(self, attachment_id: str) -> None:
        self.attachments.remove(attachment_id)

    def clear_attachments(self) -> None:
        self.attachments.clear()

    def send_user_message(self) -> bool:
        trimmed = self._composer_value.strip()
        pending = self.attachments.snapshot()
        if not trimmed and not pending:
            logger.debug("Ignoring empty agent composer submission")
            return False
        agent = self.active_agent
        if agent is None:
            logger.warning("Cannot send message without active agent")
            return False

        user_message = AgentMessage.create(agent.id, "user", trimmed, attachments=pending)
        try:
            reply_text = self._reply_generator.generate_reply(trimmed, pending, agent=agent)
            reply = AgentMessage.create(agent.id, "agent", reply_text)
        except Exception as ex:
            logger.error(f"Reply generation failed for agent {agent.id}: {ex}")
            reply = AgentMessage.create(agent.id, "system", f"Reply unavailable: {ex}")

        self.transcript.append(user_message, reply)
        self._composer_value = ""
        self.attachments.clear()
        logger.info(
            f"Appended agent conversation exchange: agent={agent.id}, "
            f"user_message_length={len(trimmed)}, attachments={len(pending)}"
        )
        return True

    def send_canvas_action(self, description: str) -> bool:
        agent = self.active_agent
        if agent is None:
            logger.warning("Cannot perform canvas action without active agent")
            return False
        message = AgentMessage.create(
            agent.id,
            "system",
            f"{self._catalog.active_model_name} suggests canvas update: {description}",
        )
        self.transcript.append(message)
        logger.info(f"Agent issued canvas action: agent={agent.id}, description={description!r}")
        return True

    async def capture_snapshot(self) -> Attachment | None:
        if self._canvas is None:
            logger.warning("Canvas not available for snapshot")
            return None
        try:
            extension, media_type, content = await self._export_view()
            if self._download_sink is not None:
                self._download_sink(f"workspace-snapshot-{int(time.time() * 1000)}.{extension}", content)
            attachment = await self.attachments.add(InMemoryFile(f"snapshot.{extension}", media_type, content))
        except (ExportFailure, AttachmentError, OSError) as ex:
            logger.error(f"Failed to capture snapshot: {ex}")
            return None
        logger.info("Snapshot captured and attached")
        return attachment

    def download_attachment(self, attachment_id: str) -> Attachment | None:
        """Write a pending or sent attachment back out through the download sink.

        ``attachment_id`` may be a unique id prefix. Returns the attachment
        written, or None when it is unknown or the write fails.
        """
        if self._download_sink is None:
            logger.warning("Download sink not available")
            return None
        attachment = self._find_attachment(attachment_id)
        if attachment is None:
            logger.warning(f"Attachment not found: {attachment_id}")
            return None
        try:
            content = base64.b64decode(attachment.data, validate=True)
            self._download_sink(attachment.name, content)
        except (binascii.Error, ValueError, OSError) as ex:
            logger.error(f"Failed to download attachment {attachment.id}: {ex}")
            return None
        logger.info(f"Attachment offered for download: {attachment.name} ({len(content)} bytes)")
        return attachment

    def _find_attachment(self, attachment_id: str) -> Attachment | None:
        attachment_id = attachment_id.strip()
        if not attachment_id:
            return None
        candidates: dict[str, Attachment] = {}
        for message in self.transcript.messages:
            for attachment in message.attachments:
                candidates[attachment.id] = attachment
        for attachment in self.attachments.pending:
            candidates[attachment.id] = attachment
        if attachment_id in candidates:
            return candidates[attachment_id]
        matches = [a for i, a in candidates.items() if i.startswith(attachment_id)]
        return matches[0] if len(matches) == 1 else None

    async def capture_inference_context(self) -> bool:
        if self._canvas is None:
            logger.warning("Canvas not available for inference")
            return False
        if self.active_agent is None:
            logger.warning("Cannot capture inference context without active agent")
            return False

        selected = self._canvas.list_elements("selected")
        board_image: tuple[str, str, bytes] | None = None
        if selected:
            context_type = "selection"
            elements = selected
        else:
            context_type = "full-board"
            elements = self._canvas.list_elements("all")
            try:
                board_image = await self._export_view()
            except ExportFailure as ex:
                logger.warning(f"Failed to export board image: {ex}")

        self._composer_value = build_refine_prompt(context_type, [e.to_dict() for e in elements])
        if board_image is not None:
            extension, media_type, content = board_image
            try:
                await self.attachments.add(InMemoryFile(f"board.{extension}", media_type, content))
            except AttachmentError as ex:
                logger.warning(f"Board image not attached: {ex}")
        logger.info(f"Captured inference context: type={context_type}, elements={len(elements)}")
        return self.send_user_message()

    def record_canvas_mutation(self, snapshot: Any) -> None:
        if self.recorder.is_armed:
            self.recorder.observe_canvas_mutation(snapshot)

    def start_recording(self, name: str | None = None) -> Recording | None:
        if self.replay.is_playing:
            logger.warning("Cannot start recording while a replay is playing")
            return None
        return self.recorder.start(name)

    def stop_recording(self) -> Recording | None:
        return self.recorder.stop()

    def select_replay(self, identifier: str) -> Recording | None:
        recording = self.archive.get(identifier)
        if recording is None:
            logger.warning(f"Recording not found: {identifier}")
            return None
        if not self.replay.select(recording):
            return None
        return recording

    def play_replay(self) -> bool:
        if self.recorder.is_armed:
            logger.warning("Cannot play a replay while recording")
            return False
        return self.replay.play()

    def stop_replay(self) -> None:
        self.replay.stop()

    async def _export_view(self) -> tuple[str, str, bytes]:
        assert self._canvas is not None
        extension = self._snapshot_format
        media_type = IMAGE_MEDIA_TYPES.get(extension, f"image/{extension}")
        try:
            content = await self._canvas.export_current_view_as_image(extension)
        except ExportFailure:
            raise
        except Exception as ex:
            raise ExportFailure(f"Canvas export failed: {ex}") from ex
        return extension, media_type, content
