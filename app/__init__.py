"""CineWatch movie discovery service package."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "app": "app.main",
    "create_app": "app.main",
    "AggregationEngine": "app.services.recommendations",
    "RecommendationService": "app.services.recommendations",
    "WatchlistUnavailable": "app.services.recommendations",
}

__all__ = list(_EXPORTS)


def __getattr__(name: str) -> Any:
    # Resolved lazily so importing the engine does not build the web app.
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module 'app' has no attribute {name}")
    return getattr(import_module(module_name), name)
