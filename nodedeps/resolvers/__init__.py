"""Per package manager dependency resolution."""

from typing import Dict, Type

from .base import BaseResolver, Dependency, ResolutionResult
from .npm import NpmResolver
from .pnpm import PnpmResolver
from .yarn import YarnResolver

RESOLVERS: Dict[str, Type[BaseResolver]] = {
    NpmResolver.TOOL: NpmResolver,
    PnpmResolver.TOOL: PnpmResolver,
    YarnResolver.TOOL: YarnResolver,
}


def get_resolver_class(tool: str) -> Type[BaseResolver]:
    """Return the resolver class for a package manager name."""
    try:
        return RESOLVERS[tool]
    except KeyError:
        raise ValueError(
            f"Unsupported package manager {tool!r}; expected one of {', '.join(sorted(RESOLVERS))}"
        ) from None


__all__ = [
    "BaseResolver",
    "Dependency",
    "NpmResolver",
    "PnpmResolver",
    "RESOLVERS",
    "ResolutionResult",
    "YarnResolver",
    "get_resolver_class",
]
