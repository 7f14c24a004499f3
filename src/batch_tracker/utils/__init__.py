"""Utilities package for batch-tracker."""

from .batch_codes import build_prefix, generate_batch_code, parse_batch_code

__all__ = [
    "build_prefix",
    "generate_batch_code",
    "parse_batch_code",
]
