from __future__ import annotations

from collections.abc import Callable
from typing import Literal

from loguru import logger

from justdraw_workspace.canvas import CanvasCollaborator
from justdraw_workspace.errors import MutationApplyFailure
from justdraw_workspace.models import AgentMessage, Recording, RecordingMetadataEntry
from justdraw_workspace.recording.recorder import MAX_MESSAGES_PER_ENTRY
from justdraw_workspace.scheduling import CancelHandle, Scheduler

ReplayState = Literal["stopped", "playing"]
StepListener = Callable[[int, RecordingMetadataEntry], None]

DEFAULT_STEP_SECONDS = 2.0


class ReplayEngine:
    """Timed playback of one recording against the canvas and a replay-only chat view.

    Steps are driven by the scheduler. ``_playing`` together with a generation
    counter is checked when a step is scheduled and again when it fires, so a
    step queued before stop() can never run after it.
    """

    def __init__(
        self,
        canvas: CanvasCollaborator | None,
        scheduler: Scheduler,
        *,
        step_seconds: float = DEFAULT_STEP_SECONDS,
        max_messages_per_entry: int = MAX_MESSAGES_PER_ENTRY,
    ):
        self._canvas = canvas
        self._scheduler = scheduler
        self._step_seconds = step_seconds
        self._max_messages = max(1, max_messages_per_entry)
        self._selected: Recording | None = None
        self._step = 0
        self._chat_view: list[AgentMessage] = []
        self._playing = False
        self._generation = 0
        self._pending: CancelHandle | None = None
        self._listeners: list[StepListener] = []

    @property
    def state(self) -> ReplayState:
        return "playing" if self._playing else "stopped"

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def selected(self) -> Recording | None:
        return self._selected

    @property
    def step(self) -> int:
        return self._step

    @property
    def total_steps(self) -> int:
        return len(self._selected.metadata) if self._selected is not None else 0

    @property
    def chat_view(self) -> tuple[AgentMessage, ...]:
        return tuple(self._chat_view)

    def add_listener(self, listener: StepListener) -> None:
        self._listeners.append(listener)

    def select(self, recording: Recording | None) -> bool:
        if self._playing:
            logger.warning("Cannot change replay selection while playing")
            return False
        self._selected = recording
        self._step = 0
        self._chat_view = []
        if recording is not None:
            logger.info(f"Replay selected: {recording.id} ({len(recording.metadata)} steps)")
        return True

    def play(self) -> bool:
        if self._selected is None or self._canvas is None or self._playing:
            return False
        self._playing = True
        self._generation += 1
        logger.info(f"Replay playing: {self._selected.id} from step {self._step}/{self.total_steps}")
        self._fire(self._generation)
        return True

    def stop(self) -> None:
        if not self._playing:
            return
        self._playing = False
        self._generation += 1
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        logger.info(f"Replay stopped at step {self._step}/{self.total_steps}")

    def _fire(self, generation: int) -> None:
        self._pending = None
        if not self._playing or generation != self._generation or self._selected is None:
            return

        entries = self._selected.metadata
        if self._step >= len(entries):
            self._finish()
            return

        entry = entries[self._step]
        if entry.canvas_diff is not None:
            self._apply(entry)
        self._chat_view.extend(entry.chat_messages[-self._max_messages:])
        self._step += 1
        for listener in list(self._listeners):
            try:
                listener(self._step, entry)
            except Exception as ex:
                logger.error(f"Replay step listener failed at step {self._step}: {ex}")

        if self._step >= len(entries):
            self._finish()
            return
        self._schedule_next(generation)

    def _schedule_next(self, generation: int) -> None:
        if not self._playing or generation != self._generation:
            return
        self._pending = self._scheduler.schedule(self._step_seconds, lambda: self._fire(generation))

    def _apply(self, entry: RecordingMetadataEntry) -> None:
        assert self._canvas is not None
        try:
            self._canvas.apply_mutation_snapshot(entry.canvas_diff)
        except Exception as ex:
            failure = ex if isinstance(ex, MutationApplyFailure) else MutationApplyFailure(str(ex))
            logger.error(f"Replay step {self._step + 1} could not apply canvas snapshot: {failure}")

    def _finish(self) -> None:
        self._playing = False
        self._generation += 1
        logger.info(f"Replay finished: {self._step}/{self.total_steps} steps")
