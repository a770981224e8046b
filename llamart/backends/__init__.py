"""Generation backends and the contract they implement."""

from __future__ import annotations

from llamart.backends.base import (
    MULTIMODAL_END_OF_SEQUENCE,
    TEXT_END_OF_SEQUENCE,
    Backend,
    BackendFactory,
    BackendKind,
    TokenCallback,
    select_backend_kind,
)

__all__ = [
    "Backend",
    "BackendFactory",
    "BackendKind",
    "MULTIMODAL_END_OF_SEQUENCE",
    "TEXT_END_OF_SEQUENCE",
    "TokenCallback",
    "select_backend_kind",
]
