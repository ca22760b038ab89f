from __future__ import annotations

from collections.abc import Callable
from html import escape
from typing import Any, Literal, Protocol, runtime_checkable
from uuid import uuid4

from loguru import logger

from justdraw_workspace.errors import ExportFailure, MutationApplyFailure
from justdraw_workspace.models import CanvasElement

ElementScope = Literal["all", "selected"]
MutationListener = Callable[[dict[str, Any]], None]

IMAGE_MEDIA_TYPES = {
    "svg": "image/svg+xml",
    "png": "image/png",
    "jpeg": "image/jpeg",
}


@runtime_checkable
class CanvasCollaborator(Protocol):
    async def export_current_view_as_image(self, image_format: str) -> bytes: ...
    def list_elements(self, scope: ElementScope = "all") -> list[CanvasElement]: ...
    def apply_mutation_snapshot(self, snapshot: Any) -> None: ...


class InMemoryCanvas:
    """Element document with a selection, standing in for the drawing surface.

    Local edits are reported to listeners as mutation batches of the form
    ``{"added": [...], "updated": [...], "removed": [ids]}``; the same shape is
    accepted by apply_mutation_snapshot.
    """

    _PADDING = 40
    _DEFAULT_SIZE = 120

    def __init__(self) -> None:
        self._elements: dict[str, CanvasElement] = {}
        self._selected: list[str] = []
        self._listeners: list[MutationListener] = []

    def add_listener(self, listener: MutationListener) -> None:
        self._listeners.append(listener)

    def add_element(
        self,
        kind: str,
        x: float,
        y: float,
        properties: dict[str, Any] | None = None,
        *,
        element_id: str | None = None,
    ) -> CanvasElement:
        element = CanvasElement(
            id=element_id or f"shape:{uuid4().hex[:12]}",
            kind=kind,
            x=float(x),
            y=float(y),
            properties=dict(properties or {}),
        )
        self._elements[element.id] = element
        self._emit({"added": [element.to_dict()], "updated": [], "removed": []})
        return element

    def move_element(self, element_id: str, x: float, y: float) -> CanvasElement:
        current = self._elements.get(element_id)
        if current is None:
            raise KeyError(element_id)
        moved = CanvasElement(current.id, current.kind, float(x), float(y), dict(current.properties))
        self._elements[element_id] = moved
        self._emit({"added": [], "updated": [moved.to_dict()], "removed": []})
        return moved

    def remove_element(self, element_id: str) -> None:
        if self._elements.pop(element_id, None) is None:
            return
        self._selected = [i for i in self._selected if i != element_id]
        self._emit({"added": [], "updated": [], "removed": [element_id]})

    def select(self, element_ids: list[str]) -> list[str]:
        self._selected = [i for i in element_ids if i in self._elements]
        return list(self._selected)

    def clear_selection(self) -> None:
        self._selected = []

    def list_elements(self, scope: ElementScope = "all") -> list[CanvasElement]:
        if scope == "selected":
            return [self._elements[i] for i in self._selected if i in self._elements]
        return list(self._elements.values())

    def apply_mutation_snapshot(self, snapshot: Any) -> None:
        if not isinstance(snapshot, dict):
            raise MutationApplyFailure(f"Mutation snapshot must be an object, got {type(snapshot).__name__}")
        try:
            upserts = [CanvasElement.from_dict(e) for e in [*snapshot.get("added", []), *snapshot.get("updated", [])]]
            removed = [str(i) for i in snapshot.get("removed", [])]
        except (KeyError, TypeError, ValueError) as ex:
            raise MutationApplyFailure(f"Malformed mutation snapshot: {ex}") from ex

        for element in upserts:
            self._elements[element.id] = element
        for element_id in removed:
            self._elements.pop(element_id, None)
        self._selected = [i for i in self._selected if i in self._elements]
        logger.debug(f"Applied mutation snapshot: upserts={len(upserts)}, removed={len(removed)}")

    async def export_current_view_as_image(self, image_format: str) -> bytes:
        if image_format != "svg":
            raise ExportFailure(f"Unsupported export format: {image_format!r}")
        return self._render_svg().encode("utf-8")

    def _emit(self, batch: dict[str, Any]) -> None:
        for listener in list(self._listeners):
            listener(batch)

    def _render_svg(self) -> str:
        elements = list(self._elements.values())
        size = self._DEFAULT_SIZE
        max_x = max((e.x for e in elements), default=0.0) + size + self._PADDING
        max_y = max((e.y for e in elements), default=0.0) + size + self._PADDING
        parts = [
            f'<svg xmlns="http://www.w3.org/2000/svg" width="{max_x:.0f}" height="{max_y:.0f}">',
            '<rect width="100%" height="100%" fill="white"/>',
        ]
        for element in elements:
            fill = escape(str(element.properties.get("fill", "none")))
            parts.append(
                f'<rect x="{element.x:.0f}" y="{element.y:.0f}" width="{size}" height="{size // 2}" '
                f'fill="{fill}" stroke="black"/>'
            )
            text = element.properties.get("text")
            if text:
                parts.append(
                    f'<text x="{element.x + 8:.0f}" y="{element.y + 24:.0f}">{escape(str(text))}</text>'
                )
        parts.append("</svg>")
        return "\n".join(parts)
