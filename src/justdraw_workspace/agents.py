from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Protocol, runtime_checkable

from justdraw_workspace.errors import UnknownAgent

AgentProvider = Literal["google", "openrouter", "ollama", "anthropic"]
AgentStatus = Literal["online", "offline", "beta"]


@dataclass(frozen=True)
class AgentProfile:
    id: str
    name: str
    provider: str
    model: str
    description: str = ""
    status: AgentStatus = "online"
    temperature: float = 0.7

    @classmethod
    def from_config(cls, payload: dict[str, Any]) -> AgentProfile:
        return cls(
            id=str(payload["Id"]),
            name=str(payload.get("Name", payload["Id"])),
            provider=str(payload.get("Provider", "openrouter")),
            model=str(payload.get("Model", "")),
            description=str(payload.get("Description", "")),
            status=payload.get("Status", "online"),
            temperature=float(payload.get("Temperature", 0.7)),
        )


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    description: str = ""
    context_length: int = 0


DEFAULT_AGENT_PROFILES: tuple[AgentProfile, ...] = (
    AgentProfile(
        id="sketch-partner",
        name="Sketch Partner",
        provider="openrouter",
        model="x-ai/grok-4-fast:free",
        description="Turns rough sketches into tidy diagrams.",
        status="online",
        temperature=0.4,
    ),
    AgentProfile(
        id="layout-critic",
        name="Layout Critic",
        provider="google",
        model="google/gemini-flash-1.5",
        description="Reviews spacing, alignment and balance on the board.",
        status="beta",
        temperature=0.2,
    ),
    AgentProfile(
        id="local-scribe",
        name="Local Scribe",
        provider="ollama",
        model="llama3.1",
        description="Offline note taker for workshop sessions.",
        status="offline",
        temperature=0.7,
    ),
)

DEFAULT_MODELS: tuple[ModelInfo, ...] = (
    ModelInfo("x-ai/grok-4-fast:free", "Grok 4 Fast (Free)", "Default Grok 4 Fast free-tier model.", 262144),
    ModelInfo("openai/gpt-4o-mini", "GPT-4o Mini", "Balanced OpenAI GPT-4o mini.", 128000),
    ModelInfo("google/gemini-flash-1.5", "Gemini Flash 1.5", "Fast multimodal Gemini Flash 1.5.", 1048576),
    ModelInfo("anthropic/claude-3.5-sonnet", "Claude 3.5 Sonnet", "High-performance Claude model.", 200000),
)


class AgentRegistry:
    def __init__(self, profiles: list[AgentProfile] | tuple[AgentProfile, ...] = DEFAULT_AGENT_PROFILES):
        self._profiles: dict[str, AgentProfile] = {p.id: p for p in profiles}

    def get(self, agent_id: str) -> AgentProfile | None:
        return self._profiles.get(agent_id)

    def require(self, agent_id: str) -> AgentProfile:
        profile = self._profiles.get(agent_id)
        if profile is None:
            raise UnknownAgent(agent_id)
        return profile

    def list(self) -> list[AgentProfile]:
        return list(self._profiles.values())

    def first_id(self) -> str:
        return next(iter(self._profiles), "")


@runtime_checkable
class ModelCatalog(Protocol):
    @property
    def active_model_name(self) -> str: ...


class StaticModelCatalog:
    def __init__(self, models: list[ModelInfo] | tuple[ModelInfo, ...], active_model_id: str):
        self._models = list(models)
        self._active_model_id = active_model_id

    @property
    def models(self) -> list[ModelInfo]:
        return list(self._models)

    @property
    def active_model_id(self) -> str:
        return self._active_model_id

    @property
    def active_model_name(self) -> str:
        for model in self._models:
            if model.id == self._active_model_id:
                return model.name
        return self._active_model_id

    def set_active_model(self, model_id: str) -> None:
        self._active_model_id = model_id
