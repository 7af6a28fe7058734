"""Exposure chain propagation.

Walks the interaction graph outward from a positive reporter and creates one
notification per reachable person, merging additional paths into it.
"""

from .engine import (
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_VISITS,
    DEFAULT_REPORTER_NAME,
    DEFAULT_RETENTION_DAYS,
    PathInfo,
    PropagationConfig,
    PropagationEngine,
    PropagationRequest,
    PropagationResult,
    merge_path,
)

__all__ = [
    "DEFAULT_MAX_DEPTH",
    "DEFAULT_MAX_VISITS",
    "DEFAULT_REPORTER_NAME",
    "DEFAULT_RETENTION_DAYS",
    "PathInfo",
    "PropagationConfig",
    "PropagationEngine",
    "PropagationRequest",
    "PropagationResult",
    "merge_path",
]
