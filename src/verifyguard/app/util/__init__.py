"""Utility helpers for application-wide functionality."""

from .number import coerce_float, coerce_int, parse_positive_float, parse_positive_int

__all__ = [
    "coerce_float",
    "coerce_int",
    "parse_positive_float",
    "parse_positive_int",
]
