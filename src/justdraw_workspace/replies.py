from __future__ import annotations

import base64
import json
from typing import Protocol, runtime_checkable

import anthropic
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from justdraw_workspace.agents import AgentProfile, ModelCatalog
from justdraw_workspace.models import Attachment

REFINE_PROMPT_PREFIX = "Refine this hand-drawn"

_ANTHROPIC_IMAGE_TYPES = {"image/png", "image/jpeg", "image/gif", "image/webp"}

_SYSTEM_PROMPT = (
    "You are a whiteboard co-pilot. Answer briefly. When asked to refine a drawing, "
    "reply with JSON containing 'shapes' (id, type, x, y, props) and 'layout'."
)


@runtime_checkable
class ReplyGenerator(Protocol):
    def generate_reply(
        self,
        prompt_text: str,
        attachments: tuple[Attachment, ...],
        *,
        agent: AgentProfile,
    ) -> str: ...


_REFINED_STRUCTURE = {
    "shapes": [
        {
            "id": "refined-1",
            "type": "rectangle",
            "x": 100,
            "y": 100,
            "props": {"text": "Refined Box", "fill": "blue", "icon": "flowchart-basics/box"},
        },
        {
            "id": "refined-2",
            "type": "arrow",
            "x": 200,
            "y": 150,
            "props": {
                "handleStart": {"x": 150, "y": 150},
                "handleEnd": {"x": 200, "y": 150},
                "icon": "arrow-straight",
            },
        },
        {
            "id": "refined-icon",
            "type": "geo",
            "x": 300,
            "y": 100,
            "props": {"text": "Icon Widget", "fill": "green", "icon": "generic-icons/cog"},
        },
    ],
    "layout": "balanced",
}


class EchoReplyGenerator:
    """Offline replies: acknowledges the prompt, or returns a canned refined structure."""

    def __init__(self, catalog: ModelCatalog):
        self._catalog = catalog

    def generate_reply(
        self,
        prompt_text: str,
        attachments: tuple[Attachment, ...],
        *,
        agent: AgentProfile,
    ) -> str:
        if prompt_text.startswith(REFINE_PROMPT_PREFIX):
            return f"Refined structure: {json.dumps(_REFINED_STRUCTURE, indent=2)}"

        attachment_info = ""
        if attachments:
            lines = [
                f"- {a.name} ({a.media_type}, {a.size / 1024:.1f} KB): {a.data[:100]}..."
                for a in attachments
            ]
            attachment_info = "\n\nAttached files:\n" + "\n".join(lines)
        return (
            f"{self._catalog.active_model_name} acknowledges: “{prompt_text}”{attachment_info}. "
            f"(Profile model: {agent.model}, temp={agent.temperature})"
        )


def _on_retry(retry_state):
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    logger.warning(f"{reason}. Retrying reply in {wait:.0f}s (attempt {attempt}/3)...")


def to_anthropic_content(prompt_text: str, attachments: tuple[Attachment, ...]) -> list[dict]:
    blocks: list[dict] = []
    for attachment in attachments:
        if attachment.media_type in _ANTHROPIC_IMAGE_TYPES:
            blocks.append({
                "type": "image",
                "source": {"type": "base64", "media_type": attachment.media_type, "data": attachment.data},
            })
        elif attachment.media_type == "application/pdf":
            blocks.append({
                "type": "document",
                "source": {"type": "base64", "media_type": "application/pdf", "data": attachment.data},
            })
        elif attachment.media_type.startswith("text/"):
            text = base64.b64decode(attachment.data).decode("utf-8", errors="replace")
            blocks.append({"type": "text", "text": f"Attached file {attachment.name}:\n{text}"})
        else:
            blocks.append({"type": "text", "text": f"[attachment {attachment.name} ({attachment.media_type}) omitted]"})
    blocks.append({"type": "text", "text": prompt_text or "(no text, see attachments)"})
    return blocks


class AnthropicReplyGenerator:
    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        max_tokens: int = 1024,
        client: anthropic.Anthropic | None = None,
    ):
        self._client = client or anthropic.Anthropic(api_key=api_key)
        self._model = model
        self._max_tokens = max_tokens

    def generate_reply(
        self,
        prompt_text: str,
        attachments: tuple[Attachment, ...],
        *,
        agent: AgentProfile,
    ) -> str:
        return self._create(prompt_text, attachments, agent.temperature)

    @retry(
        retry=retry_if_exception_type((
            anthropic.RateLimitError,
            anthropic.APIConnectionError,
            anthropic.APITimeoutError,
        )),
        wait=wait_exponential(multiplier=2, min=2, max=30),
        stop=stop_after_attempt(3),
        before_sleep=_on_retry,
        reraise=True,
    )
    def _create(self, prompt_text: str, attachments: tuple[Attachment, ...], temperature: float) -> str:
        logger.debug(f"Reply request: model={self._model}, attachments={len(attachments)}")
        response = self._client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            temperature=temperature,
            system=_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": to_anthropic_content(prompt_text, attachments)}],
        )
        text = "".join(block.text for block in response.content if block.type == "text")
        logger.debug(f"Reply response: stop_reason={response.stop_reason}, chars={len(text)}")
        return text


def create_reply_generator(
    provider_name: str,
    catalog: ModelCatalog,
    *,
    api_key: str = "",
    model: str = "",
    max_tokens: int = 1024,
) -> ReplyGenerator:
    """Factory: create a ReplyGenerator by name."""
    name = provider_name.strip().lower()
    if name == "echo":
        return EchoReplyGenerator(catalog)
    if name == "anthropic":
        return AnthropicReplyGenerator(api_key, model=model, max_tokens=max_tokens)
    raise ValueError(f"Unknown reply provider: {provider_name!r}. Supported: 'echo', 'anthropic'")
