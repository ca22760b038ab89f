from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from justdraw_workspace.agents import DEFAULT_AGENT_PROFILES, DEFAULT_MODELS, AgentProfile, ModelInfo


@dataclass
class RuntimeEnv:
    provider_api_key: str
    provider_env_var: str


@dataclass
class AppConfig:
    log_level: str
    log_consumers: list | None
    storage_db_path: str
    reply_provider: str
    reply_model: str
    reply_max_tokens: int
    active_model_id: str
    models: list[ModelInfo]
    agents: list[AgentProfile]
    default_agent_id: str | None
    replay_step_seconds: float
    recording_capacity: int
    max_messages_per_entry: int
    snapshot_format: str
    download_directory: str


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _parse_models(raw: object) -> list[ModelInfo]:
    if not isinstance(raw, list) or not raw:
        return list(DEFAULT_MODELS)
    models: list[ModelInfo] = []
    for item in raw:
        if not isinstance(item, dict) or "Id" not in item:
            continue
        models.append(
            ModelInfo(
                id=str(item["Id"]),
                name=str(item.get("Name", item["Id"])),
                description=str(item.get("Description", "")),
                context_length=int(item.get("ContextLength", 0)),
            )
        )
    return models or list(DEFAULT_MODELS)


def _parse_agents(raw: object) -> list[AgentProfile]:
    if not isinstance(raw, list) or not raw:
        return list(DEFAULT_AGENT_PROFILES)
    agents = [AgentProfile.from_config(item) for item in raw if isinstance(item, dict) and "Id" in item]
    return agents or list(DEFAULT_AGENT_PROFILES)


def parse_app_config(config: dict) -> AppConfig:
    models = _parse_models(config.get("Models"))
    return AppConfig(
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
        storage_db_path=str(config.get("StorageDbPath", ".justdraw/workspace.db")),
        reply_provider=str(config.get("ReplyProvider", "echo")).strip().lower(),
        reply_model=str(config.get("ReplyModel", "claude-sonnet-4-5-20250929")),
        reply_max_tokens=int(config.get("ReplyMaxTokens", 1024)),
        active_model_id=str(config.get("ActiveModel", models[0].id)),
        models=models,
        agents=_parse_agents(config.get("Agents")),
        default_agent_id=str(config.get("DefaultAgent", "")).strip() or None,
        replay_step_seconds=float(config.get("ReplayStepSeconds", 2.0)),
        recording_capacity=int(config.get("RecordingCapacity", 5)),
        max_messages_per_entry=int(config.get("MaxMessagesPerEntry", 5)),
        snapshot_format=str(config.get("SnapshotFormat", "svg")).strip().lower(),
        download_directory=str(config.get("DownloadDirectory", "snapshots")),
    )


def resolve_runtime_env(reply_provider: str) -> RuntimeEnv:
    if reply_provider == "anthropic":
        return RuntimeEnv(
            provider_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
            provider_env_var="ANTHROPIC_API_KEY",
        )
    return RuntimeEnv(provider_api_key="", provider_env_var="")
