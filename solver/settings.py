"""
Bellman Solver: runtime settings.

Defaults can be overridden with ``BELLMAN_*`` environment variables
(e.g. ``BELLMAN_PORT=9000``) or by passing a dict to ``get_settings``.
"""

import os
from typing import Optional

ENV_PREFIX = "BELLMAN_"

# ── Default settings ─────────────────────────────────────────────────────
DEFAULT_SETTINGS = {
    "gamma": "0.9",
    "transition_matrix": "0.5,0.5\n0.2,0.8",
    "rewards": "1,0",
    "log_level": "INFO",          # "DEBUG", "INFO", "WARNING", "ERROR"
    "host": "127.0.0.1",
    "port": 8100,
}


def _coerce(key: str, raw: str):
    default = DEFAULT_SETTINGS[key]
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"Setting {ENV_PREFIX}{key.upper()} must be an integer, got '{raw}'.")
    if key == "transition_matrix":
        # Allow "0.5,0.5;0.2,0.8" in a single-line environment variable.
        return raw.replace(";", "\n")
    return raw


def get_settings(overrides: Optional[dict] = None) -> dict:
    """Return the effective settings: defaults, then environment, then *overrides*."""
    merged = dict(DEFAULT_SETTINGS)
    for key in DEFAULT_SETTINGS:
        raw = os.environ.get(ENV_PREFIX + key.upper())
        if raw is not None:
            merged[key] = _coerce(key, raw)
    if overrides:
        unknown = set(overrides) - set(DEFAULT_SETTINGS)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
        merged.update({k: v for k, v in overrides.items() if v is not None})
    merged["log_level"] = str(merged["log_level"]).upper()
    return merged
