"""Chain computation: windows, paths, STI matching, display and updates."""

from .paths import are_paths_equivalent, has_equivalent_path, normalize_path
from .sti import (
    covers_all,
    max_incubation_days,
    normalize_sti_types,
    overlapping_sti_types,
    parse_sti_types,
    sti_types_match,
)
from .updates import ChainUpdatePropagator, is_intermediary, is_recipient
from .visualization import (
    UpstreamHop,
    apply_member_status,
    apply_recipient_status,
    build_chain_nodes,
    member_index,
)
from .window import Window, compute_window, retention_boundary

__all__ = [
    "ChainUpdatePropagator",
    "UpstreamHop",
    "Window",
    "apply_member_status",
    "apply_recipient_status",
    "are_paths_equivalent",
    "build_chain_nodes",
    "compute_window",
    "covers_all",
    "has_equivalent_path",
    "is_intermediary",
    "is_recipient",
    "max_incubation_days",
    "member_index",
    "normalize_path",
    "normalize_sti_types",
    "overlapping_sti_types",
    "parse_sti_types",
    "retention_boundary",
    "sti_types_match",
]
