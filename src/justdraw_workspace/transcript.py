from __future__ import annotations

from collections.abc import Callable

from loguru import logger

from justdraw_workspace.agents import AgentRegistry, ModelCatalog
from justdraw_workspace.errors import StoreLoadCorrupt, UnknownAgent
from justdraw_workspace.models import AgentMessage
from justdraw_workspace.storage import KeyValueStore, read_json_list, write_json

TranscriptListener = Callable[[tuple[AgentMessage, ...]], None]


def session_key(agent_id: str) -> str:
    return f"agent-session-{agent_id}"


class TranscriptStore:
    """Append-only message log for the active agent, mirrored to storage."""

    def __init__(self, storage: KeyValueStore, agents: AgentRegistry, catalog: ModelCatalog):
        self._storage = storage
        self._agents = agents
        self._catalog = catalog
        self._messages: list[AgentMessage] = []
        self._agent_id: str | None = None
        self._listeners: list[TranscriptListener] = []

    @property
    def messages(self) -> tuple[AgentMessage, ...]:
        return tuple(self._messages)

    @property
    def agent_id(self) -> str | None:
        return self._agent_id

    def __len__(self) -> int:
        return len(self._messages)

    def add_listener(self, listener: TranscriptListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: TranscriptListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def hydrate(self, agent_id: str) -> bool:
        try:
            self._agents.require(agent_id)
        except UnknownAgent as ex:
            self._messages = []
            self._agent_id = None
            logger.warning(f"Attempted to hydrate agent session: {ex}")
            return False

        self._agent_id = agent_id
        intro = AgentMessage.create(agent_id, "system", f"Connected to {self._catalog.active_model_name}.")
        # Not saved until the first append, so the previous history stays restorable.
        self._messages = [intro]
        logger.info(f"Hydrated agent session: {agent_id}")
        return True

    def append(self, *messages: AgentMessage) -> None:
        if not messages:
            return
        self._messages.extend(messages)
        for listener in list(self._listeners):
            try:
                listener(messages)
            except Exception as ex:
                logger.error(f"Transcript listener failed: {ex}")
        if self._agent_id is not None:
            self.save(self._agent_id)

    def load(self, agent_id: str) -> list[AgentMessage]:
        key = session_key(agent_id)
        try:
            loaded = self._decode(key)
        except StoreLoadCorrupt as ex:
            logger.error(f"Failed to load agent session from storage: {ex}")
            self._storage.delete(key)
            loaded = None

        if loaded is None:
            return []
        self._agent_id = agent_id
        self._messages = loaded
        logger.info(f"Loaded agent session from storage: {agent_id} ({len(loaded)} messages)")
        return list(loaded)

    def save(self, agent_id: str) -> None:
        if not self._messages:
            return
        try:
            write_json(self._storage, session_key(agent_id), [m.to_dict() for m in self._messages])
            logger.debug(f"Saved agent session to storage: {agent_id} ({len(self._messages)} messages)")
        except Exception as ex:
            logger.error(f"Failed to save agent session to storage: {agent_id}: {ex}")

    def _decode(self, key: str) -> list[AgentMessage] | None:
        payload = read_json_list(self._storage, key)
        if payload is None:
            return None
        try:
            return [AgentMessage.from_dict(item) for item in payload]
        except (KeyError, TypeError, ValueError, AttributeError) as ex:
            raise StoreLoadCorrupt(key, f"{type(ex).__name__}: {ex}") from ex
