"""Engine configuration loaded from an optional JSON file."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DRAWMARK_CONFIG"
DEFAULT_CONFIG_NAME = "drawmark.json"


@dataclass
class EngineConfig:
    min_box_size: float = 1.0
    min_font_size: float = 2.0
    default_decimal_places: int = 2
    max_history: int = 50
    min_scale: float = 0.5
    max_scale: float = 1000.0
    row_epsilon: float = 3.0
    stamp_min_width: float = 200.0
    stamp_min_height: float = 150.0
    handle_size: float = 8.0
    company_name: str = "協立機興株式会社"
    autosave_max_age_hours: float = 24.0

    def asdict(self) -> Dict[str, Any]:
        return asdict(self)


def _coerce(template: Any, raw: Any) -> Any:
    # bool first: isinstance(True, int) holds
    if isinstance(template, bool):
        if isinstance(raw, bool):
            return raw
        raise TypeError("expected bool")
    if isinstance(template, int):
        return int(raw)
    if isinstance(template, float):
        return float(raw)
    if isinstance(template, str):
        if not isinstance(raw, str):
            raise TypeError("expected str")
        return raw
    return raw


def config_from_dict(data: Dict[str, Any], base: Optional[EngineConfig] = None) -> EngineConfig:
    """Overlay ``data`` on ``base``; unknown keys and bad values are skipped."""
    config = EngineConfig(**(base or EngineConfig()).asdict())
    known = {f.name for f in fields(EngineConfig)}
    for key, raw in data.items():
        if key not in known:
            logger.debug("Ignoring unknown config key %r", key)
            continue
        try:
            value = _coerce(getattr(config, key), raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid value for %s: %r", key, raw)
            continue
        setattr(config, key, value)
    if config.min_scale <= 0 or config.max_scale < config.min_scale:
        logger.warning("Invalid zoom bounds in config; using defaults")
        config.min_scale = EngineConfig.min_scale
        config.max_scale = EngineConfig.max_scale
    if config.max_history < 1:
        config.max_history = 1
    return config


def _default_path() -> Path:
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return Path(__file__).with_name(DEFAULT_CONFIG_NAME)


def load_config(path: Optional[str | Path] = None) -> EngineConfig:
    config_path = Path(path) if path is not None else _default_path()
    if not config_path.exists():
        return EngineConfig()
    try:
        with config_path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Could not read config %s: %s", config_path, exc)
        return EngineConfig()
    if not isinstance(data, dict):
        logger.warning("Config %s must contain a JSON object", config_path)
        return EngineConfig()
    return config_from_dict(data)
