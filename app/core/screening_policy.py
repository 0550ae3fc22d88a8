from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

_POLICY_CACHE: dict[str, Any] | None = None
_DEFAULT_POLICY_PATH = Path(__file__).resolve().parents[2] / "config" / "screening.yaml"


def _policy_path() -> Path:
    override = (os.getenv("SCREENING_POLICY_PATH") or "").strip()
    return Path(override) if override else _DEFAULT_POLICY_PATH


def get_screening_policy() -> dict[str, Any]:
    """Load the screening policy from config/screening.yaml and cache it."""
    global _POLICY_CACHE

    if _POLICY_CACHE is not None:
        return _POLICY_CACHE

    path = _policy_path()
    if not path.exists():
        raise RuntimeError(
            f"Screening policy not found at '{path}'. "
            "Expected file: config/screening.yaml"
        )

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RuntimeError(f"Failed to read screening policy '{path}': {exc}") from exc

    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise RuntimeError(f"Invalid YAML in screening policy '{path}': {exc}") from exc

    if not isinstance(parsed, dict):
        raise RuntimeError(f"Invalid screening policy '{path}': expected a top-level mapping.")

    _POLICY_CACHE = parsed
    return _POLICY_CACHE


def get_policy_value(path: str, default: Any = None) -> Any:
    """Get nested policy value using dot path notation, e.g. 'decision.min_match_score'."""
    if not path:
        return default

    current: Any = get_screening_policy()
    for key in path.split("."):
        if not isinstance(current, dict):
            return default
        if key not in current:
            return default
        current = current[key]
    return current


def reset_policy_cache() -> None:
    global _POLICY_CACHE
    _POLICY_CACHE = None
