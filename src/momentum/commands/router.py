from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping

CommandHandler = Callable[[str], Awaitable[None]]


class CommandRouter:
    """Dispatches ``/name args`` lines to the handler registered for ``/name``."""

    def __init__(
        self,
        handlers: Mapping[str, CommandHandler],
        *,
        on_unknown: Callable[[str], None],
    ) -> None:
        self._handlers = {name.lower(): handler for name, handler in handlers.items()}
        self._on_unknown = on_unknown

    @property
    def commands(self) -> list[str]:
        return sorted(self._handlers)

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        name = trimmed.split(maxsplit=1)[0].lower()
        handler = self._handlers.get(name)
        if handler is None:
            self._on_unknown(trimmed)
            return True

        await handler(trimmed)
        return True
