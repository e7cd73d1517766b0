"""Read-only access to the cacache content-addressable store."""

from .cacache import CacacheResolver, integrity_to_hex

__all__ = ["CacacheResolver", "integrity_to_hex"]
