from justdraw_workspace.recording.archive import RecordingArchive
from justdraw_workspace.recording.recorder import Recorder
from justdraw_workspace.recording.replay import ReplayEngine

__all__ = [
    "Recorder",
    "RecordingArchive",
    "ReplayEngine",
]
