"""Tool version detection and schema variant dispatch.

The output schema of ``npm ls``/``pnpm ls``/``yarn`` changes between tool
releases. Which decoder to use is looked up once per run in
``VARIANT_TABLE`` instead of being branched on throughout the code.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from packaging.version import InvalidVersion, Version

from nodedeps.errors import ConfigurationError

logger = logging.getLogger("nodedeps.parsers.versions")


class SchemaVariant(str, Enum):
    """Closed set of output schemas understood by nodedeps."""

    NPM_LEGACY = "npm-legacy"
    NPM_MODERN = "npm-modern"
    PNPM = "pnpm"
    YARN_CLASSIC = "yarn-classic"
    YARN_BERRY = "yarn-berry"


@dataclass(frozen=True)
class VariantRule:
    """Maps a half-open version range ``[min_version, max_version)`` to a variant."""

    tool: str
    min_version: Optional[str]
    max_version: Optional[str]
    variant: SchemaVariant

    def matches(self, tool: str, version: Version) -> bool:
        if tool != self.tool:
            return False
        if self.min_version is not None and version < Version(self.min_version):
            return False
        if self.max_version is not None and version >= Version(self.max_version):
            return False
        return True


VARIANT_TABLE: Tuple[VariantRule, ...] = (
    VariantRule("npm", "5.4.0", "7.0.0", SchemaVariant.NPM_LEGACY),
    VariantRule("npm", "7.0.0", None, SchemaVariant.NPM_MODERN),
    VariantRule("pnpm", "6.0.0", None, SchemaVariant.PNPM),
    VariantRule("yarn", "1.0.0", "2.0.0", SchemaVariant.YARN_CLASSIC),
    VariantRule("yarn", "2.4.0", None, SchemaVariant.YARN_BERRY),
)


def parse_tool_version(text: str) -> Version:
    """Parse the output of ``<tool> --version``.

    Raises:
        ConfigurationError: If the output holds no recognizable version.
    """
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    if not lines:
        raise ConfigurationError("empty version output")
    raw = lines[-1].lstrip("v")
    try:
        return Version(raw)
    except InvalidVersion as exc:
        raise ConfigurationError(f"unrecognized tool version {raw!r}") from exc


def select_variant(tool: str, version: Version) -> SchemaVariant:
    """Pick the schema variant for a tool version.

    Raises:
        ConfigurationError: If no rule covers the version.
    """
    for rule in VARIANT_TABLE:
        if rule.matches(tool, version):
            logger.debug("Using %s schema for %s %s", rule.variant.value, tool, version)
            return rule.variant
    supported = ", ".join(
        f"[{r.min_version or '*'}, {r.max_version or '*'})"
        for r in VARIANT_TABLE
        if r.tool == tool
    )
    raise ConfigurationError(
        f"{tool} {version} is not supported (supported ranges: {supported or 'none'})"
    )
