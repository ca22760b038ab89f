import sys
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

_CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> <level>{level:<7}</level> <cyan>{name}</cyan> - <level>{message}</level>"
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}"


@runtime_checkable
class LogSink(Protocol):
    def attach(self, level: str) -> int: ...
    def describe(self, level: str) -> str: ...


class ConsoleSink:
    def attach(self, level: str) -> int:
        return logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT)

    def describe(self, level: str) -> str:
        return f"console (stderr, {level})"


class FileSink:
    def __init__(self, path: str = "workspace.log", rotation: str = "5 MB", retention: int = 3):
        self._path = path
        self._rotation = rotation
        self._retention = retention

    def attach(self, level: str) -> int:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        return logger.add(
            self._path,
            level=level,
            format=_FILE_FORMAT,
            rotation=self._rotation,
            retention=self._retention,
        )

    def describe(self, level: str) -> str:
        return f"file ({self._path}, {level})"


class JsonFileSink(FileSink):
    """Line-delimited JSON records, one per log call."""

    def attach(self, level: str) -> int:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        return logger.add(
            self._path,
            level=level,
            serialize=True,
            rotation=self._rotation,
            retention=self._retention,
        )

    def describe(self, level: str) -> str:
        return f"json ({self._path}, {level})"


_SINK_TYPES: dict[str, type] = {
    "console": ConsoleSink,
    "file": FileSink,
    "json": JsonFileSink,
}

# Console stays quiet while the prompt is active; details go to the file.
_DEFAULT_SINKS = [
    {"type": "console", "level": "WARNING"},
    {"type": "file", "path": "workspace.log"},
]


def setup_logging(level: str = "INFO", consumers: list[dict[str, Any]] | None = None) -> list[str]:
    """Replace loguru's default handler with the configured sinks; returns their descriptions."""
    logger.remove()

    descriptions: list[str] = []
    for config in consumers if consumers is not None else _DEFAULT_SINKS:
        sink_type = config.get("type", "")
        cls = _SINK_TYPES.get(sink_type)
        if cls is None:
            logger.warning(f"Unknown log sink type: {sink_type!r}")
            continue

        options = {k: v for k, v in config.items() if k not in ("type", "level")}
        sink_level = config.get("level", level)
        sink = cls(**options)
        sink.attach(sink_level)
        descriptions.append(sink.describe(sink_level))

    return descriptions
