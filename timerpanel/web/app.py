"""FastAPI integration: one timer registry per request plus a demo app.

``TimerPanelMiddleware`` gives every request its own ``TimerRegistry``
(reachable as ``request.state.timers`` and through the shortcut
functions), times the whole request, reports the timers in a
``Server-Timing`` header and appends the rendered debug bar to HTML pages.
"""
from __future__ import annotations

import argparse
import logging
import os
import re
import sys
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from timerpanel import __version__
from timerpanel.bar import DebugBar
from timerpanel.config.settings import Settings
from timerpanel.core.registry import TimerRegistry
from timerpanel.domain.timers import TimerEntry
from timerpanel.panel import TimerPanel
from timerpanel.shortcuts import activate, deactivate, start_timer, start_timer_stack, start_timer_sum, stop_timer

APP_NAME = "Timer Panel"
APP_DESCRIPTION = "Request-scoped start/stop timers rendered in a debug bar."

REQUEST_TIMER_KEY = "request"

log = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[^A-Za-z0-9!#$%&'*+.^_`|~-]")


def server_timing_header(entries: Tuple[TimerEntry, ...]) -> str:
    """Render timers as a Server-Timing header value (durations in ms)."""

    parts = []
    for entry in entries:
        metric = _TOKEN_RE.sub("_", entry.key) or "timer"
        item = f"{metric};dur={entry.total * 1000.0:.1f}"
        if entry.title:
            desc = entry.title.replace("\\", "\\\\").replace('"', '\\"')
            item += f';desc="{desc}"'
        parts.append(item)
    return ", ".join(parts)


def inject_bar(html: str, bar_html: str) -> str:
    index = html.lower().rfind("</body>")
    if index == -1:
        return html + bar_html
    return html[:index] + bar_html + html[index:]


class TimerPanelMiddleware(BaseHTTPMiddleware):
    """Bind a fresh registry and debug bar to every request."""

    def __init__(self, app: ASGIApp, settings: Optional[Settings] = None) -> None:
        super().__init__(app)
        self.settings = settings or Settings()

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        registry = TimerRegistry.from_settings(self.settings)
        bar = DebugBar()
        panel = TimerPanel.register(bar, registry, self.settings)
        request.state.timers = registry
        request.state.debug_bar = bar

        panel_settings = self.settings.panel
        if panel_settings.request_timer:
            registry.start(REQUEST_TIMER_KEY, f"{request.method} {request.url.path}", capture_origin=False)

        token = activate(registry)
        try:
            response = await call_next(request)
        finally:
            deactivate(token)

        request_entry = registry.get(REQUEST_TIMER_KEY)
        if request_entry is not None and request_entry.running:
            registry.stop(REQUEST_TIMER_KEY)

        if not panel_settings.enabled:
            return response

        entries = panel.collect()
        log.debug("%s %s recorded %d timer key(s)", request.method, request.url.path, len(entries))
        if panel_settings.server_timing and entries:
            response.headers["Server-Timing"] = server_timing_header(entries)

        content_type = response.headers.get("content-type", "")
        if panel_settings.inject_bar and content_type.startswith("text/html"):
            response = await self._with_bar(response, bar)
        return response

    async def _with_bar(self, response: Response, bar: DebugBar) -> Response:
        body = b"".join([chunk async for chunk in response.body_iterator])
        charset = response.charset or "utf-8"
        html = inject_bar(body.decode(charset, errors="replace"), bar.render())
        content = html.encode(charset)
        patched = Response(content=content, status_code=response.status_code, background=response.background)
        patched.raw_headers = [
            (name, value) for name, value in response.raw_headers if name.lower() != b"content-length"
        ] + [(b"content-length", str(len(content)).encode("latin-1"))]
        return patched


DEMO_PAGE = """<!doctype html>
<html>
<head><title>{title}</title></head>
<body>
<h1>{title}</h1>
<p>Squares: {squares}. Items: {items}.</p>
</body>
</html>
"""


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create the demo application with the timer middleware installed."""

    settings = settings or Settings()
    app = FastAPI(title=APP_NAME, description=APP_DESCRIPTION, version=__version__)
    app.add_middleware(TimerPanelMiddleware, settings=settings)

    @app.get("/health", tags=["core"])
    async def health() -> Dict[str, bool]:
        return {"ok": True}

    @app.get("/info", tags=["core"])
    async def info() -> Dict[str, Any]:
        """Return version metadata and the active panel options."""

        return {
            "app": APP_NAME,
            "description": APP_DESCRIPTION,
            "version": __version__,
            "panel": settings.to_dict()["panel"],
        }

    @app.get("/", response_class=HTMLResponse, tags=["demo"])
    async def demo() -> HTMLResponse:
        """Exercise the three timer modes and return an HTML page."""

        start_timer("squares", "Sum of squares")
        squares = sum(i * i for i in range(5000))
        stop_timer()

        items = []
        for i in range(4):
            start_timer_sum("items", "Build items")
            items.append(str(i) * 3)
            stop_timer("items")

        for _ in range(3):
            start_timer_stack()
            stop_timer()

        start_timer(title="Left open until report")
        return HTMLResponse(DEMO_PAGE.format(title=APP_NAME, squares=squares, items=len(items)))

    @app.get("/timers", tags=["demo"])
    async def timers(request: Request) -> Dict[str, Any]:
        """Report the timers recorded so far for this request."""

        registry: TimerRegistry = request.state.timers
        with registry.measure("lookup", "Settings lookup"):
            options = settings.to_dict()
        report = TimerPanel(registry, settings=settings).report()
        report["options"] = options
        return report

    return app


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point when executed as a module."""

    from timerpanel.services.logging import setup_logging

    parser = argparse.ArgumentParser(description=APP_DESCRIPTION)
    parser.add_argument("--host", help="Interface to bind (default from settings)")
    parser.add_argument("--port", type=int, help="Port to listen on (default from settings)")
    parser.add_argument(
        "--write-config",
        action="store_true",
        help="Persist the resolved host/port to the settings file and exit",
    )
    args = parser.parse_args(argv)

    setup_logging()
    settings = Settings.load()
    if args.host:
        settings.web.host = args.host
    if args.port:
        settings.web.port = args.port

    if args.write_config:
        settings.save()
        return 0

    import uvicorn

    host = os.environ.get("UVICORN_HOST", settings.web.host)
    port = int(os.environ.get("UVICORN_PORT", str(settings.web.port)))
    uvicorn.run(create_app(settings), host=host, port=port)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
