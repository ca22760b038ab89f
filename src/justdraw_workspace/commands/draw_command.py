from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from typing import Any


@dataclass
class DrawOptions:
    kind: str
    x: float
    y: float
    properties: dict[str, Any] = field(default_factory=dict)


def parse_command_args(args: str) -> list[str]:
    return shlex.split(args)


def parse_draw_options(parts: list[str], *, line_prefix: str) -> tuple[DrawOptions | None, str | None]:
    """Parse ``<kind> <x> <y> [text...] [--fill <color>]``."""
    usage = f"{line_prefix}Usage: /draw <kind> <x> <y> [text] [--fill <color>]"
    if len(parts) < 3:
        return None, usage
    try:
        x = float(parts[1])
        y = float(parts[2])
    except ValueError:
        return None, usage

    opts = DrawOptions(kind=parts[0], x=x, y=y)
    text_tokens: list[str] = []
    idx = 3
    while idx < len(parts):
        token = parts[idx]
        if token == "--fill":
            if idx + 1 >= len(parts):
                return None, usage
            opts.properties["fill"] = parts[idx + 1]
            idx += 2
            continue
        text_tokens.append(token)
        idx += 1
    if text_tokens:
        opts.properties["text"] = " ".join(text_tokens)
    return opts, None
