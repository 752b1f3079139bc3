import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from loguru import logger

LOG_FILE_NAME = "momentum.log"

RecordFilter = Callable[[dict[str, Any]], bool]


def module_filter(modules: Sequence[str] | None) -> RecordFilter | None:
    """Restrict a sink to records logged from the given module prefixes."""
    if not modules:
        return None
    prefixes = tuple(modules)
    return lambda record: record["name"].startswith(prefixes)


@runtime_checkable
class LogConsumer(Protocol):
    def register(self, level: str) -> None: ...
    def describe(self, level: str) -> str: ...


class ConsoleLogConsumer:
    def __init__(self, modules: Sequence[str] | None = None):
        self._modules = list(modules or [])

    def register(self, level: str) -> None:
        logger.add(
            sys.stderr,
            level=level,
            format="<level>{level:<8}</level> | momentum | <cyan>{name}</cyan> - <level>{message}</level>",
            filter=module_filter(self._modules),
        )

    def describe(self, level: str) -> str:
        scope = f", {'/'.join(self._modules)} only" if self._modules else ""
        return f"console (stderr, {level}{scope})"


class FileLogConsumer:
    """Rotating log file. Relative paths land in the Momentum data directory."""

    def __init__(
        self,
        path: str = LOG_FILE_NAME,
        rotation: str = "5 MB",
        retention: int = 3,
        modules: Sequence[str] | None = None,
        *,
        log_dir: Path | None = None,
    ):
        resolved = Path(path).expanduser()
        if not resolved.is_absolute() and log_dir is not None:
            resolved = log_dir / resolved
        self._path = resolved
        self._rotation = rotation
        self._retention = retention
        self._modules = list(modules or [])

    @property
    def path(self) -> Path:
        return self._path

    def register(self, level: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(self._path),
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | {name}:{function}:{line} - {message}",
            rotation=self._rotation,
            retention=self._retention,
            filter=module_filter(self._modules),
        )

    def describe(self, level: str) -> str:
        scope = f", {'/'.join(self._modules)} only" if self._modules else ""
        return f"file ({self._path}, {level}, rotates at {self._rotation}{scope})"


_CONSUMER_TYPES: dict[str, type] = {
    "console": ConsoleLogConsumer,
    "file": FileLogConsumer,
}

# Console stays quiet so log lines do not interleave with shell output.
_DEFAULT_CONSUMERS: list[dict[str, Any]] = [
    {"type": "console", "level": "WARNING"},
    {"type": "file", "path": LOG_FILE_NAME},
]


def _build_consumer(sink_type: str, kwargs: dict[str, Any], log_dir: Path | None) -> LogConsumer | None:
    cls = _CONSUMER_TYPES.get(sink_type)
    if cls is None:
        return None
    if cls is FileLogConsumer:
        return FileLogConsumer(**kwargs, log_dir=log_dir)
    return cls(**kwargs)


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
    *,
    log_dir: Path | None = None,
) -> list[str]:
    """Replace every loguru sink with the configured consumers.

    Each consumer dict names a ``type`` and may override ``level``; a
    ``modules`` list narrows the sink to those loggers (for example
    ``["momentum.cloud"]`` for a sync-only file). Remaining keys go to the
    consumer's constructor. Relative file paths resolve against ``log_dir``,
    normally the directory holding the snapshot database. Returns one
    description per registered sink.
    """
    logger.remove()

    if consumers is None:
        consumers = _DEFAULT_CONSUMERS

    descriptions: list[str] = []

    for config in consumers:
        sink_type = config.get("type", "")
        kwargs = {k: v for k, v in config.items() if k not in ("type", "level")}
        try:
            consumer = _build_consumer(sink_type, kwargs, log_dir)
        except TypeError as ex:
            logger.warning(f"Invalid {sink_type} log consumer options: {ex}")
            continue
        if consumer is None:
            logger.warning(f"Unknown log consumer type: {sink_type!r}")
            continue

        sink_level = config.get("level", level)
        consumer.register(sink_level)
        descriptions.append(consumer.describe(sink_level))

    return descriptions
