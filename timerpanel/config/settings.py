"""Robust configuration handling for the timer panel."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict

log = logging.getLogger(__name__)


def config_dir() -> Path:
    return Path(os.environ.get("TIMERPANEL_SETTINGS_DIR", Path.home() / ".timerpanel"))


def config_path() -> Path:
    return config_dir() / "config.json"


@dataclass
class FormatterSettings:
    """Display policy for durations."""

    precision: int = 4
    elevated_ms: float = 500.0
    markup: bool = True

    def __post_init__(self) -> None:
        try:
            self.precision = max(0, int(self.precision))
        except Exception:
            self.precision = 4
        try:
            self.elevated_ms = float(self.elevated_ms)
        except Exception:
            self.elevated_ms = 500.0
        if self.elevated_ms <= 0:
            self.elevated_ms = 500.0
        self.markup = _coerce_bool(self.markup)


@dataclass
class PanelSettings:
    """What the request middleware records and shows."""

    enabled: bool = True
    capture_origin: bool = True
    request_timer: bool = True
    inject_bar: bool = True
    server_timing: bool = True

    def __post_init__(self) -> None:
        for name in ("enabled", "capture_origin", "request_timer", "inject_bar", "server_timing"):
            setattr(self, name, _coerce_bool(getattr(self, name)))


@dataclass
class WebSettings:
    """Demo server parameters."""

    host: str = "127.0.0.1"
    port: int = 8080

    def __post_init__(self) -> None:
        self.host = str(self.host or "127.0.0.1")
        try:
            self.port = int(self.port)
        except Exception:
            self.port = 8080
        if not 0 < self.port < 65536:
            self.port = 8080


@dataclass
class Settings:
    """Top level settings dataclass."""

    formatter: FormatterSettings = field(default_factory=FormatterSettings)
    panel: PanelSettings = field(default_factory=PanelSettings)
    web: WebSettings = field(default_factory=WebSettings)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    # ------------------------------------------------------------------
    @staticmethod
    def _atomic_save(payload: Dict[str, Any], path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(path)

    # ------------------------------------------------------------------
    def save(self, path: Path | None = None) -> None:
        """Persist the settings to disk atomically, keeping unknown keys."""

        path = path or config_path()
        existing: Dict[str, Any] = {}
        try:
            loaded = json.loads(path.read_text(encoding="utf-8"))
            if isinstance(loaded, dict):
                existing = loaded
        except FileNotFoundError:
            existing = {}
        except Exception:
            log.debug("Could not read existing settings before save", exc_info=True)
            existing = {}

        self._atomic_save(_deep_update(existing, self.to_dict()), path)
        log.info("Settings saved to %s", path)

    # ------------------------------------------------------------------
    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Settings":
        def load_section(section: type, data: Dict[str, Any]) -> Any:
            if not isinstance(data, dict):
                data = {}
            field_names = {f.name for f in section.__dataclass_fields__.values()}
            filtered = {k: v for k, v in data.items() if k in field_names}
            return section(**filtered)

        return cls(
            formatter=load_section(FormatterSettings, payload.get("formatter", {})),
            panel=load_section(PanelSettings, payload.get("panel", {})),
            web=load_section(WebSettings, payload.get("web", {})),
        )

    # ------------------------------------------------------------------
    @classmethod
    def load(cls, path: Path | None = None) -> "Settings":
        """Load settings from disk, regenerating defaults on corruption."""

        path = path or config_path()
        default_payload = cls().to_dict()
        needs_resave = False

        try:
            raw = path.read_text(encoding="utf-8")
            if not raw.strip():
                raise ValueError("empty settings file")
            payload = json.loads(raw)
            if not isinstance(payload, dict):
                raise ValueError("settings payload must be a JSON object")
            log.info("Loaded settings from %s", path)
        except FileNotFoundError:
            log.warning("Settings file %s missing; regenerating defaults", path)
            payload = default_payload
            needs_resave = True
        except (json.JSONDecodeError, ValueError) as exc:
            log.warning("Settings file %s invalid (%s); regenerating defaults", path, exc)
            _backup_corrupt_file(path)
            payload = default_payload
            needs_resave = True

        merged = _merge_defaults(default_payload, payload)
        settings = cls.from_dict(merged)

        if merged != payload or needs_resave:
            try:
                cls._atomic_save(merged, path)
            except OSError:
                log.exception("Could not persist regenerated configuration")

        log.debug(
            "Timer panel config: precision=%s elevated_ms=%s enabled=%s inject_bar=%s",
            settings.formatter.precision,
            settings.formatter.elevated_ms,
            settings.panel.enabled,
            settings.panel.inject_bar,
        )
        return settings


# ----------------------------------------------------------------------
def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _backup_corrupt_file(path: Path) -> None:
    try:
        if path.exists():
            path.with_name(path.name + ".bak").write_bytes(path.read_bytes())
            path.unlink()
    except OSError:  # pragma: no cover - best effort
        log.debug("Could not create backup for corrupt settings", exc_info=True)


def _deep_update(original: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    result: Dict[str, Any] = dict(original)
    for key, value in updates.items():
        if isinstance(value, dict):
            base = result.get(key, {})
            if not isinstance(base, dict):
                base = {}
            result[key] = _deep_update(base, value)
        else:
            result[key] = value
    return result


def _merge_defaults(defaults: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    def merge_dict(default: Dict[str, Any], data: Dict[str, Any]) -> Dict[str, Any]:
        result: Dict[str, Any] = dict(default)
        for key, value in data.items():
            if key in default and isinstance(default[key], dict) and isinstance(value, dict):
                result[key] = merge_dict(default[key], value)
            else:
                result[key] = value
        return result

    return merge_dict(defaults, payload or {})


__all__ = [
    "Settings",
    "FormatterSettings",
    "PanelSettings",
    "WebSettings",
    "config_path",
]
