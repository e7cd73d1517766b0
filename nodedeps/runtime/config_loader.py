"""Helpers for loading extraction configuration from TOML/JSON sources.

This module provides a single entry point `load_extract_config`
that accepts various configuration sources:

* None -> default ExtractConfig
* dict -> ExtractConfig.from_dict
* Path / path-like string -> load .toml/.json from filesystem
* Inline JSON/TOML strings

A ``[nodedeps]`` table (or ``"nodedeps"`` key) is used when present so the
settings can live in a larger shared file.
"""

from __future__ import annotations

import json
import logging
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional, Union

from nodedeps.config.schema import ExtractConfig

logger = logging.getLogger("nodedeps.runtime.config_loader")

ConfigSource = Union[str, Path, Dict[str, Any], None]

SECTION = "nodedeps"


def _guess_format(text: str) -> str:
    stripped = text.lstrip()
    return "json" if stripped.startswith(("{", "[")) else "toml"


def _is_file(path: Path) -> bool:
    # Inline strings can exceed the file name length limit
    try:
        return path.is_file()
    except OSError:
        return False


def _select_section(data: Dict[str, Any]) -> Dict[str, Any]:
    section = data.get(SECTION)
    if isinstance(section, dict):
        return section
    return data


def load_extract_config(source: ConfigSource) -> ExtractConfig:
    """Load ExtractConfig from various configuration sources.

    Args:
        source: One of:
            * None: returns the default ExtractConfig
            * dict: treated as already-parsed configuration mapping
            * str/Path: either a filesystem path to a .toml/.json file,
              or an inline TOML/JSON string (auto-detected)

    Returns:
        ExtractConfig instance.

    Raises:
        ValueError: If the parsed configuration is not a mapping.
        TypeError: If the source type is unsupported.
        pydantic.ValidationError: If a value fails validation.
    """
    if source is None:
        logger.debug("No config source provided; using default ExtractConfig")
        return ExtractConfig()

    if isinstance(source, dict):
        logger.debug("Loading ExtractConfig from provided dict")
        return ExtractConfig.from_dict(_select_section(source))

    if isinstance(source, (str, Path)):
        path = Path(source)
        text: Optional[str] = None
        fmt: Optional[str] = None

        if _is_file(path):
            text = path.read_text(encoding="utf-8")
            suffix = path.suffix.lower()
            if suffix in {".toml", ".tml"}:
                fmt = "toml"
            elif suffix == ".json":
                fmt = "json"
            else:
                fmt = _guess_format(text)
            logger.info("Loading configuration from file: %s (fmt=%s)", path, fmt)
        else:
            text = str(source)
            fmt = _guess_format(text)
            logger.info("Loading configuration from inline %s string", fmt)

        if fmt == "json":
            data = json.loads(text)
        else:
            data = tomllib.loads(text)

        if not isinstance(data, dict):
            raise ValueError("Top-level configuration must be a mapping/dict")

        return ExtractConfig.from_dict(_select_section(data))

    raise TypeError(f"Unsupported config source type: {type(source)!r}")


__all__ = ["ConfigSource", "load_extract_config"]
