"""Minimal debug bar that collects panels and renders them together."""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class DebugBar:
    """Ordered set of panels exposing ``get_tab()`` and ``get_panel()``."""

    def __init__(self) -> None:
        self._panels: Dict[str, Any] = {}

    def add_panel(self, panel: Any, id: Optional[str] = None) -> "DebugBar":
        panel_id = id or getattr(panel, "id", None) or type(panel).__name__
        if panel_id in self._panels:
            raise ValueError(f"panel '{panel_id}' is already registered")
        self._panels[panel_id] = panel
        return self

    def get_panel(self, id: str) -> Optional[Any]:
        return self._panels.get(id)

    @property
    def panels(self) -> List[Any]:
        return list(self._panels.values())

    def render(self) -> str:
        parts = ['<div id="timerpanel-debug-bar">']
        for panel_id, panel in self._panels.items():
            parts.append(f'<section data-panel="{panel_id}">')
            parts.append(f'<header>{panel.get_tab()}</header>')
            parts.append(panel.get_panel())
            parts.append("</section>")
        parts.append("</div>")
        return "\n".join(parts)


__all__ = ["DebugBar"]
