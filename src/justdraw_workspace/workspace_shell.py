from __future__ import annotations

from loguru import logger

from justdraw_workspace.agents import AgentRegistry, StaticModelCatalog
from justdraw_workspace.attachments import LocalFile
from justdraw_workspace.canvas import InMemoryCanvas
from justdraw_workspace.commands.draw_command import parse_command_args, parse_draw_options
from justdraw_workspace.commands.router import CommandRouter
from justdraw_workspace.errors import AttachmentError
from justdraw_workspace.models import AgentMessage, RecordingMetadataEntry
from justdraw_workspace.session_controller import WorkspaceSession


def format_message(message: AgentMessage, *, line_prefix: str) -> list[str]:
    lines = [f"{line_prefix}[{message.author}] {message.content}"]
    for attachment in message.attachments:
        lines.append(
            f"{line_prefix}  + {attachment.name} [{attachment.id[:8]}] "
            f"({attachment.media_type}, {attachment.size / 1024:.1f} KB)"
        )
    return lines


class WorkspaceShell:
    _LINE_PREFIX = "workspace> "

    def __init__(
        self,
        session: WorkspaceSession,
        canvas: InMemoryCanvas,
        agents: AgentRegistry,
        catalog: StaticModelCatalog,
    ):
        self._session = session
        self._canvas = canvas
        self._agents = agents
        self._catalog = catalog
        self._session.replay.add_listener(self._on_replay_step)
        self._router = CommandRouter(
            handlers={
                "/help": self._on_help,
                "/agent": self._on_agent,
                "/model": self._on_model,
                "/attach": self._on_attach,
                "/detach": self._on_detach,
                "/download": self._on_download,
                "/canvas": self._on_canvas,
                "/draw": self._on_draw,
                "/select": self._on_select,
                "/snapshot": self._on_snapshot,
                "/refine": self._on_refine,
                "/record": self._on_record,
                "/replay": self._on_replay,
                "/restore": self._on_restore,
            },
            on_unknown=self._on_unknown_command,
        )

    async def handle(self, user_input: str) -> None:
        if await self._router.try_handle(user_input):
            return
        self._session.set_composer_value(user_input)
        self._send_and_print()

    def _print(self, text: str) -> None:
        print(f"{self._LINE_PREFIX}{text}")

    def _send_and_print(self) -> None:
        before = len(self._session.messages)
        if not self._session.send_user_message():
            self._print("Nothing sent (empty message or no active agent).")
            return
        for message in self._session.messages[before:]:
            for line in format_message(message, line_prefix=self._LINE_PREFIX):
                print(line)

    async def _on_help(self, _: str) -> None:
        self._print("Commands:")
        for command in self._router.commands:
            self._print(f"  {command}")

    async def _on_agent(self, args: str) -> None:
        if not args or args == "list":
            active = self._session.active_agent_id
            for agent in self._agents.list():
                marker = "*" if agent.id == active else " "
                self._print(f"{marker} {agent.id}: {agent.name} ({agent.model}, {agent.status})")
            return
        if self._session.select_agent(args):
            for message in self._session.messages:
                for line in format_message(message, line_prefix=self._LINE_PREFIX):
                    print(line)
        else:
            self._print(f"Unknown agent: {args}")

    async def _on_model(self, args: str) -> None:
        if not args:
            for model in self._catalog.models:
                marker = "*" if model.id == self._catalog.active_model_id else " "
                self._print(f"{marker} {model.id}: {model.name}")
            return
        self._catalog.set_active_model(args)
        self._print(f"Active model: {self._catalog.active_model_name}")

    async def _on_attach(self, args: str) -> None:
        if not args:
            self._print("Usage: /attach <path>")
            return
        for path in parse_command_args(args):
            try:
                attachment = await self._session.add_attachment(LocalFile(path))
            except AttachmentError as ex:
                self._print(str(ex))
                return
            self._print(f"Attached {attachment.name} [{attachment.id[:8]}]")

    async def _on_detach(self, args: str) -> None:
        matches = [a for a in self._session.pending_attachments if a.id.startswith(args)] if args else []
        if len(matches) != 1:
            self._print("Usage: /detach <attachment id or unique prefix>")
            return
        self._session.remove_attachment(matches[0].id)
        self._print(f"Detached {matches[0].name}")

    async def _on_download(self, args: str) -> None:
        if not args:
            self._print("Usage: /download <attachment id or unique prefix>")
            return
        attachment = self._session.download_attachment(args)
        if attachment is None:
            self._print(f"Attachment not downloaded: {args}")
            return
        self._print(f"Downloaded {attachment.name} [{attachment.id[:8]}]")

    async def _on_canvas(self, args: str) -> None:
        if not args:
            self._print("Usage: /canvas <description>")
            return
        if self._session.send_canvas_action(args):
            for line in format_message(self._session.messages[-1], line_prefix=self._LINE_PREFIX):
                print(line)

    async def _on_draw(self, args: str) -> None:
        opts, error = parse_draw_options(parse_command_args(args), line_prefix=self._LINE_PREFIX)
        if opts is None:
            print(error)
            return
        element = self._canvas.add_element(opts.kind, opts.x, opts.y, opts.properties)
        self._print(f"Drew {element.kind} {element.id} at ({element.x:.0f}, {element.y:.0f})")

    async def _on_select(self, args: str) -> None:
        if not args:
            self._canvas.clear_selection()
            self._print("Selection cleared")
            return
        selected = self._canvas.select(parse_command_args(args))
        self._print(f"Selected: {', '.join(selected) or 'nothing'}")

    async def _on_snapshot(self, _: str) -> None:
        attachment = await self._session.capture_snapshot()
        if attachment is None:
            self._print("Snapshot failed (see log).")
            return
        self._print(f"Snapshot attached: {attachment.name} [{attachment.id[:8]}]")

    async def _on_refine(self, _: str) -> None:
        before = len(self._session.messages)
        if not await self._session.capture_inference_context():
            self._print("Nothing to refine (no canvas or no active agent).")
            return
        for message in self._session.messages[before:]:
            for line in format_message(message, line_prefix=self._LINE_PREFIX):
                print(line)

    async def _on_record(self, args: str) -> None:
        action, _, name = args.partition(" ")
        if action == "start":
            recording = self._session.start_recording(name.strip() or None)
            self._print(f"Recording {recording.id[:8]} started." if recording else "Recording not started.")
        elif action == "stop":
            recording = self._session.stop_recording()
            if recording is None:
                self._print("Not recording.")
            else:
                self._print(f"Saved {recording.display_name} ({len(recording.metadata)} steps).")
        else:
            self._print("Usage: /record start [name] | /record stop")

    async def _on_replay(self, args: str) -> None:
        action, _, rest = args.partition(" ")
        replay = self._session.replay
        if action in ("", "list"):
            for recording in self._session.recordings:
                end = recording.end_time or "-"
                self._print(
                    f"[{recording.id[:8]}] {recording.display_name} "
                    f"(start={recording.start_time}, end={end}, steps={len(recording.metadata)})"
                )
            return
        if action == "select":
            try:
                recording = self._session.select_replay(rest)
            except ValueError as ex:
                self._print(str(ex))
                return
            self._print(f"Selected {recording.display_name}." if recording else f"Recording not found: {rest}")
        elif action == "play":
            if not self._session.play_replay():
                self._print("Replay not started (select a recording; stop recording first).")
        elif action == "stop":
            self._session.stop_replay()
            self._print(f"Stopped at step {replay.step} / {replay.total_steps}")
        elif action == "status":
            self._print(f"{replay.state}: step {replay.step} / {replay.total_steps}")
        else:
            self._print("Usage: /replay list | select <id> | play | stop | status")

    async def _on_restore(self, _: str) -> None:
        count = self._session.restore_transcript()
        self._print(f"Restored {count} persisted message(s).")

    def _on_replay_step(self, step: int, entry: RecordingMetadataEntry) -> None:
        self._print(f"Replay step {step} / {self._session.replay.total_steps} ({entry.timestamp})")
        for message in entry.chat_messages:
            for line in format_message(message, line_prefix=self._LINE_PREFIX + "  "):
                print(line)

    def _on_unknown_command(self, command: str) -> None:
        logger.debug(f"Unknown command: {command}")
        self._print(f"Unknown command: {command}. Type /help for commands.")
