from __future__ import annotations


class WorkspaceError(Exception):
    """Base class for recoverable workspace failures."""


class AttachmentError(WorkspaceError):
    pass


class SizeExceeded(AttachmentError):
    def __init__(self, name: str, size: int, limit: int):
        super().__init__(f"File size exceeds {limit // (1024 * 1024)}MB limit: {name} ({size} bytes)")
        self.name = name
        self.size = size
        self.limit = limit


class UnsupportedType(AttachmentError):
    def __init__(self, name: str, media_type: str):
        super().__init__(f"Unsupported file type: {media_type or 'unknown'} ({name})")
        self.name = name
        self.media_type = media_type


class ReadFailure(AttachmentError):
    def __init__(self, name: str, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(f"Failed to read file {name}{detail}")
        self.name = name


class UnknownAgent(WorkspaceError):
    def __init__(self, agent_id: str):
        super().__init__(f"Unknown agent id: {agent_id!r}")
        self.agent_id = agent_id


class StoreLoadCorrupt(WorkspaceError):
    def __init__(self, key: str, reason: str):
        super().__init__(f"Corrupt payload under {key!r}: {reason}")
        self.key = key


class ExportFailure(WorkspaceError):
    pass


class MutationApplyFailure(WorkspaceError):
    pass
