"""Request-scoped start/stop timers with a debug bar panel."""

from importlib import metadata as _metadata

try:  # pragma: no cover - metadata only available when installed
    __version__ = _metadata.version("timerpanel")
except _metadata.PackageNotFoundError:  # pragma: no cover - source checkouts
    __version__ = "0.0.0"

from .core.formatter import format_duration  # noqa: E402
from .core.registry import TimerRegistry  # noqa: E402
from .domain.timers import TimerError, TimerMode  # noqa: E402

__all__ = ["__version__", "TimerRegistry", "TimerMode", "TimerError", "format_duration"]
