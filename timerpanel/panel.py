"""Timer panel: renders a registry snapshot for the debug bar."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from fastapi.templating import Jinja2Templates

from .config.settings import Settings
from .core.formatter import plain_duration
from .core.registry import TimerRegistry
from .domain.timers import TimerEntry, TimerError

if TYPE_CHECKING:  # pragma: no cover
    from .bar import DebugBar

log = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATE_DIR))


class TimerPanel:
    """Bar panel showing every timer of one registry."""

    id = "timerpanel.TimerPanel"

    def __init__(self, registry: TimerRegistry, *, settings: Optional[Settings] = None) -> None:
        self.registry = registry
        self.settings = settings or Settings()

    # ------------------------------------------------------------------
    @classmethod
    def register(
        cls,
        bar: "DebugBar",
        registry: Optional[TimerRegistry] = None,
        settings: Optional[Settings] = None,
    ) -> "TimerPanel":
        """Return the bar's timer panel, creating and adding it on first use."""

        panel = bar.get_panel(cls.id)
        if panel is not None:
            return panel
        settings = settings or Settings()
        if registry is None:
            registry = TimerRegistry.from_settings(settings)
        panel = cls(registry, settings=settings)
        bar.add_panel(panel)
        return panel

    @classmethod
    def instance(cls, bar: "DebugBar") -> Optional["TimerPanel"]:
        return bar.get_panel(cls.id)

    # ------------------------------------------------------------------
    def collect(self) -> Tuple[TimerEntry, ...]:
        """Close unfinished timers and return the ordered snapshot."""

        try:
            self.registry.stop_all()
        except TimerError as exc:
            log.warning("Could not stop pending timers: %s", exc)
        return self.registry.snapshot()

    def total(self, entries: Optional[Tuple[TimerEntry, ...]] = None) -> float:
        if entries is None:
            entries = self.collect()
        return sum(entry.total for entry in entries)

    # ------------------------------------------------------------------
    def get_tab(self) -> str:
        entries = self.collect()
        return templates.get_template("timer_tab.html").render(
            total=self.registry.format(self.total(entries)),
            count=len(entries),
        )

    def get_panel(self) -> str:
        entries = self.collect()
        return templates.get_template("timer_panel.html").render(
            entries=entries,
            total=self.registry.format(self.total(entries)),
            fmt=self.registry.format,
        )

    def report(self) -> Dict[str, Any]:
        """JSON friendly view of the same data shown in the panel."""

        entries = self.collect()
        precision = self.registry.precision
        timers = []
        for entry in entries:
            timers.append(
                {
                    "key": entry.key,
                    "mode": entry.mode.value,
                    "title": entry.title,
                    "seconds": entry.total,
                    "display": plain_duration(entry.total, precision),
                    "occurrences": entry.occurrences,
                    "entries": [
                        {
                            "seconds": timer.accumulated_time,
                            "display": plain_duration(timer.accumulated_time, precision),
                            "title": timer.title,
                            "origin": timer.origin.label if timer.origin else None,
                        }
                        for timer in entry.timers
                    ],
                }
            )
        total = self.total(entries)
        return {
            "total": total,
            "total_display": plain_duration(total, precision),
            "timers": timers,
        }


__all__ = ["TimerPanel", "TEMPLATE_DIR"]
