"""Service package exports with lazy loading."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "ElectionService": "app.services.election_service",
    "FinalizationService": "app.services.finalization_service",
    "MemberService": "app.services.member_service",
    "SupabaseService": "app.services.common",
    "VoteService": "app.services.vote_service",
}

__all__ = sorted(_EXPORTS.keys())


def __getattr__(name: str) -> Any:
    if name not in _EXPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = import_module(_EXPORTS[name])
    return getattr(module, name)
