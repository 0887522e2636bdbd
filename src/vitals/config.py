"""Panel settings and load/save helpers."""

import json
import logging
import os
import platform
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from vitals.client import DEFAULT_BASE_URL, DEFAULT_TIMEOUT
from vitals.normalize import TOP_PROCESSES

logger = logging.getLogger(__name__)


@dataclass
class PanelConfig:
    base_url: str = DEFAULT_BASE_URL
    interval_ms: int = 1000
    fetch_timeout_s: float = DEFAULT_TIMEOUT
    top_count: int = TOP_PROCESSES
    agent_host: str = "127.0.0.1"
    agent_port: int = 61208

    @property
    def interval_s(self) -> float:
        """Refresh interval in seconds."""
        return self.interval_ms / 1000


def config_root() -> Path:
    """Per-platform directory holding the config file and logs."""
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "vitals"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "vitals"
    return Path.home() / ".config" / "vitals"


def config_path() -> Path:
    """Default location of the config file."""
    return config_root() / "config.json"


def normalize_config(cfg: PanelConfig) -> PanelConfig:
    """Clamp every field into its supported range, in place."""
    cfg.interval_ms = max(250, min(60_000, int(cfg.interval_ms)))
    cfg.fetch_timeout_s = max(0.1, min(60.0, float(cfg.fetch_timeout_s)))
    cfg.top_count = max(1, min(50, int(cfg.top_count)))
    cfg.agent_port = max(1, min(65535, int(cfg.agent_port)))
    cfg.base_url = str(cfg.base_url).rstrip("/") or DEFAULT_BASE_URL
    return cfg


def _merge(raw: dict[str, Any]) -> PanelConfig:
    cfg = PanelConfig()
    known = {f.name for f in fields(PanelConfig)}
    for key, value in raw.items():
        if key in known and value is not None:
            setattr(cfg, key, value)
    return cfg


def load_config(path: Path | None = None) -> PanelConfig:
    """Load settings, falling back to defaults for a missing or bad file."""
    path = path or config_path()
    if not path.exists():
        return PanelConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("ignoring unreadable config %s: %s", path, exc)
        return PanelConfig()
    if not isinstance(raw, dict):
        logger.warning("ignoring config %s: expected a JSON object", path)
        return PanelConfig()

    try:
        return normalize_config(_merge(raw))
    except (TypeError, ValueError, OverflowError) as exc:
        logger.warning("ignoring invalid config %s: %s", path, exc)
        return PanelConfig()


def save_config(cfg: PanelConfig, path: Path | None = None) -> Path:
    """Write the normalized settings as JSON and return the path."""
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(normalize_config(cfg)), indent=2, sort_keys=True), encoding="utf-8")
    return path
