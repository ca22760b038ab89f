from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from justdraw_workspace.agents import AgentRegistry, StaticModelCatalog
from justdraw_workspace.app_config import AppConfig, RuntimeEnv
from justdraw_workspace.canvas import InMemoryCanvas
from justdraw_workspace.logging_config import setup_logging
from justdraw_workspace.replies import create_reply_generator
from justdraw_workspace.scheduling import AsyncioScheduler
from justdraw_workspace.session_controller import WorkspaceSession
from justdraw_workspace.storage import SqliteKeyValueStore


class FileDownloadSink:
    def __init__(self, directory: str):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def __call__(self, file_name: str, content: bytes) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        target = self._directory / file_name
        target.write_bytes(content)
        logger.info(f"Snapshot offered for download: {target}")


@dataclass
class AppRuntime:
    session: WorkspaceSession
    canvas: InMemoryCanvas
    agents: AgentRegistry
    catalog: StaticModelCatalog
    storage: SqliteKeyValueStore
    downloads: FileDownloadSink
    log_descriptions: list[str]


def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    db_path = Path(app.storage_db_path)
    if not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    storage = SqliteKeyValueStore(str(db_path))

    agents = AgentRegistry(app.agents)
    catalog = StaticModelCatalog(app.models, app.active_model_id)
    reply_generator = create_reply_generator(
        app.reply_provider,
        catalog,
        api_key=env.provider_api_key,
        model=app.reply_model,
        max_tokens=app.reply_max_tokens,
    )
    canvas = InMemoryCanvas()
    downloads = FileDownloadSink(app.download_directory)

    session = WorkspaceSession(
        storage=storage,
        agents=agents,
        catalog=catalog,
        reply_generator=reply_generator,
        scheduler=AsyncioScheduler(),
        canvas=canvas,
        download_sink=downloads,
        snapshot_format=app.snapshot_format,
        replay_step_seconds=app.replay_step_seconds,
        recording_capacity=app.recording_capacity,
        max_messages_per_entry=app.max_messages_per_entry,
    )
    canvas.add_listener(session.record_canvas_mutation)

    initial_agent = app.default_agent_id or agents.first_id()
    if initial_agent:
        session.select_agent(initial_agent)
    else:
        logger.warning("No active agent configured")

    return AppRuntime(
        session=session,
        canvas=canvas,
        agents=agents,
        catalog=catalog,
        storage=storage,
        downloads=downloads,
        log_descriptions=log_descriptions,
    )
