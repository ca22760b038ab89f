from __future__ import annotations

from loguru import logger

from justdraw_workspace.errors import StoreLoadCorrupt
from justdraw_workspace.models import Recording
from justdraw_workspace.storage import KeyValueStore, read_json_list, write_json

RECORDINGS_KEY = "workspace-recordings"
DEFAULT_CAPACITY = 5


class RecordingArchive:
    """Fixed-capacity FIFO of finalized recordings, newest last."""

    def __init__(self, storage: KeyValueStore, *, capacity: int = DEFAULT_CAPACITY):
        self._storage = storage
        self._capacity = max(1, capacity)
        self._recordings: list[Recording] = self._load()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._recordings)

    def list(self) -> tuple[Recording, ...]:
        return tuple(self._recordings)

    def get(self, identifier: str) -> Recording | None:
        identifier = identifier.strip()
        if not identifier:
            return None
        for recording in self._recordings:
            if recording.id == identifier:
                return recording
        matches = [r for r in self._recordings if r.id.startswith(identifier)]
        if len(matches) > 1:
            raise ValueError(f"Recording id prefix is ambiguous: {identifier}")
        return matches[0] if matches else None

    def add(self, recording: Recording) -> None:
        self._recordings.append(recording)
        overflow = len(self._recordings) - self._capacity
        if overflow > 0:
            evicted = self._recordings[:overflow]
            del self._recordings[:overflow]
            logger.info(f"Evicted {len(evicted)} oldest recording(s): {', '.join(r.id for r in evicted)}")
        self._save()

    def _load(self) -> list[Recording]:
        try:
            payload = read_json_list(self._storage, RECORDINGS_KEY)
            if payload is None:
                return []
            try:
                loaded = [Recording.from_dict(item) for item in payload[-self._capacity:]]
            except (KeyError, TypeError, ValueError, AttributeError) as ex:
                raise StoreLoadCorrupt(RECORDINGS_KEY, f"{type(ex).__name__}: {ex}") from ex
        except StoreLoadCorrupt as ex:
            logger.error(f"Failed to load recordings from storage: {ex}")
            self._storage.delete(RECORDINGS_KEY)
            return []
        logger.info(f"Loaded recordings from storage: {len(loaded)} of {len(payload)}")
        return loaded

    def _save(self) -> None:
        try:
            write_json(self._storage, RECORDINGS_KEY, [r.to_dict() for r in self._recordings])
            logger.debug(f"Saved recordings to storage: {len(self._recordings)}")
        except Exception as ex:
            logger.error(f"Failed to save recordings to storage: {ex}")
