"""Configuration schema and validation for nodedeps."""

from .schema import ExtractConfig, TypeRestriction

__all__ = [
    "ExtractConfig",
    "TypeRestriction",
]
