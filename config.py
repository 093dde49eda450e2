"""Tunable settings for calendar layout and recurring-rule maintenance.

Defaults live in module constants. An optional ``scheduler_settings.json``
next to this module overrides any of them; it is read once per call to
``load_settings`` and never written.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path

logger = logging.getLogger(__name__)

DATA_FILE = Path(__file__).with_name("ledger_data.json")
SETTINGS_FILE = Path(__file__).with_name("scheduler_settings.json")

MAX_VISIBLE_ROWS = 3
EXTENSION_THRESHOLD_MONTHS = 6
EXTENSION_MONTHS = 12
INITIAL_HORIZON_MONTHS = 12
WEEK_STARTS_ON = 0  # Monday


@dataclass(frozen=True)
class Settings:
    max_visible_rows: int = MAX_VISIBLE_ROWS
    extension_threshold_months: int = EXTENSION_THRESHOLD_MONTHS
    extension_months: int = EXTENSION_MONTHS
    initial_horizon_months: int = INITIAL_HORIZON_MONTHS
    week_starts_on: int = WEEK_STARTS_ON
    data_file: str = str(DATA_FILE)


def load_settings(path: Path | str | None = None) -> Settings:
    """Return ``Settings`` with any overrides from ``path`` applied.

    A missing file yields the defaults. A file that cannot be parsed is
    logged and ignored, as are keys that are not settings.
    """

    settings_path = Path(path) if path is not None else SETTINGS_FILE
    defaults = Settings()
    if not settings_path.exists():
        return defaults

    try:
        with settings_path.open(encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", settings_path, exc)
        return defaults

    if not isinstance(raw, dict):
        logger.warning("Ignoring settings file %s: expected an object", settings_path)
        return defaults

    known = {f.name for f in fields(Settings)}
    overrides = {}
    for key, value in raw.items():
        if key not in known:
            logger.debug("Unknown setting %r ignored", key)
            continue
        if key == "data_file":
            overrides[key] = str(value)
            continue
        try:
            overrides[key] = int(value)
        except (TypeError, ValueError):
            logger.warning("Setting %s=%r is not an integer; using default", key, value)
    return replace(defaults, **overrides)
