from __future__ import annotations

import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping

from .reading_defaults import (
    DEFAULT_ESTIMATE_SIZE,
    DEFAULT_HEADER_THRESHOLD,
    DEFAULT_HEADER_TOP_ZONE,
    DEFAULT_HIGHLIGHT_DURATION,
    DEFAULT_JUMP_ATTEMPTS,
    DEFAULT_JUMP_DELAY,
    DEFAULT_OVERSCAN,
    DEFAULT_PAGE_HEIGHT,
    DEFAULT_SAVE_DELAY,
    DEFAULT_SCROLL_THROTTLE,
    DEFAULT_TOOLBAR_OFFSET,
)


@dataclass(slots=True)
class ReaderConfig:
    root: Path
    estimate_size: float = DEFAULT_ESTIMATE_SIZE
    overscan: int = DEFAULT_OVERSCAN
    page_height: float = DEFAULT_PAGE_HEIGHT
    header_top_zone: float = DEFAULT_HEADER_TOP_ZONE
    header_threshold: float = DEFAULT_HEADER_THRESHOLD
    save_delay: float = DEFAULT_SAVE_DELAY
    scroll_throttle: float = DEFAULT_SCROLL_THROTTLE
    jump_attempts: int = DEFAULT_JUMP_ATTEMPTS
    jump_delay: float = DEFAULT_JUMP_DELAY
    highlight_duration: float = DEFAULT_HIGHLIGHT_DURATION
    toolbar_offset: float = DEFAULT_TOOLBAR_OFFSET


_INT_FIELDS = {"overscan", "jump_attempts"}


def _coerce_setting(name: str, value: Any) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"reader.{name} must be a number.")
    if value < 0:
        raise ValueError(f"reader.{name} must be non-negative.")
    if name in _INT_FIELDS:
        if int(value) != value:
            raise ValueError(f"reader.{name} must be an integer.")
        return int(value)
    return float(value)


def apply_settings(config: ReaderConfig, settings: Mapping[str, Any]) -> ReaderConfig:
    known = {field.name for field in fields(ReaderConfig)} - {"root"}
    updates: dict[str, Any] = {}
    for key, value in settings.items():
        if value is None:
            continue
        if key not in known:
            raise ValueError(f"Unknown reader setting: {key}")
        updates[key] = _coerce_setting(key, value)
    if updates.get("estimate_size") == 0:
        raise ValueError("reader.estimate_size must be positive.")
    return replace(config, **updates)


def load_reader_config(
    root: Path,
    config_path: Path | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> ReaderConfig:
    """
    Build a :class:`ReaderConfig` from defaults, an optional TOML file
    (``[reader]`` table) and command-line overrides, in that order.
    """
    config = ReaderConfig(root=root)
    if config_path is not None:
        try:
            with config_path.open("rb") as fh:
                data = tomllib.load(fh)
        except FileNotFoundError as exc:
            raise FileNotFoundError(f"Config file not found: {config_path}") from exc
        except tomllib.TOMLDecodeError as exc:
            raise ValueError(f"Invalid config file {config_path}: {exc}") from exc
        section = data.get("reader", {})
        if not isinstance(section, dict):
            raise ValueError("[reader] must be a table.")
        config = apply_settings(config, section)
    if overrides:
        config = apply_settings(config, overrides)
    return config


__all__ = ["ReaderConfig", "apply_settings", "load_reader_config"]
