"""Utilities for name normalization, string similarity and confidence scoring."""
from playersync.services.sync.utils.name_normalizer import (
    normalize,
    normalize_team,
    normalize_position,
    are_names_equal,
    extract_player_name_parts,
)

__all__ = [
    "normalize",
    "normalize_team",
    "normalize_position",
    "are_names_equal",
    "extract_player_name_parts",
]
