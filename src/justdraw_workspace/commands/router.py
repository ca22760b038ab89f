from __future__ import annotations

from collections.abc import Awaitable, Callable

CommandHandler = Callable[[str], Awaitable[None]]


class CommandRouter:
    def __init__(
        self,
        *,
        handlers: dict[str, CommandHandler],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._handlers = dict(handlers)
        self._on_unknown = on_unknown

    @property
    def commands(self) -> list[str]:
        return sorted(self._handlers)

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        command, _, args = trimmed.partition(" ")
        handler = self._handlers.get(command)
        if handler is None:
            self._on_unknown(trimmed)
            return True
        await handler(args.strip())
        return True
