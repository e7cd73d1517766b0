"""Parsers turning package manager output into dependency records."""

from .base import DependencyRecord, LsEntry, walk_dependencies
from .npm import decode_legacy_entry, decode_modern_entry, parse_npm_ls
from .pnpm import parse_pnpm_ls
from .versions import SchemaVariant, parse_tool_version, select_variant

__all__ = [
    "DependencyRecord",
    "LsEntry",
    "SchemaVariant",
    "decode_legacy_entry",
    "decode_modern_entry",
    "parse_npm_ls",
    "parse_pnpm_ls",
    "parse_tool_version",
    "select_variant",
    "walk_dependencies",
]
