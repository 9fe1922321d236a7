"""Utility modules."""

from seedchain.utils.units import format_units, to_base_units

__all__ = [
    "format_units",
    "to_base_units",
]
