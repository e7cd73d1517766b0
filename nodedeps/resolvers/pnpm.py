"""pnpm dependency resolution (pnpm 6.0.0 and later).

pnpm keeps tarballs in the same cacache layout as npm, but its store path
has to be mapped to the cache directory first.
"""

import logging
from pathlib import Path
from typing import Dict, List

from nodedeps.errors import CacheError
from nodedeps.parsers.base import DependencyRecord
from nodedeps.parsers.pnpm import parse_pnpm_ls
from nodedeps.resolvers.base import BaseResolver, filter_unique_args

logger = logging.getLogger("nodedeps.resolvers.pnpm")

PNPM_INSTALL_COMMAND = "install"


def filter_pnpm_unique_args(args_to_filter: List[str], existing_args: List[str]) -> List[str]:
    """Drop ``install`` and any argument already in ``existing_args``."""
    return filter_unique_args(args_to_filter, existing_args, PNPM_INSTALL_COMMAND)


def map_store_to_cache(store_path: Path) -> Path:
    """Find the cacache directory belonging to a pnpm store.

    Newer layouts keep it next to the store as ``<store>/../cache``; some
    releases use the store path itself.

    Raises:
        CacheError: If neither location exists.
    """
    candidates = (store_path.parent / "cache", store_path)
    for candidate in candidates:
        if candidate.is_dir():
            return candidate
    raise CacheError(
        f"pnpm store is not found in '{store_path}'. Hint: Try running 'pnpm install' first."
    )


class PnpmResolver(BaseResolver):
    """Resolves dependencies with ``pnpm ls --json --long --depth Infinity``."""

    TOOL = "pnpm"
    LOCKFILE = "pnpm-lock.yaml"
    MIN_VERSION = "6.0.0"

    def install(self) -> None:
        args: List[str] = [PNPM_INSTALL_COMMAND, *self.config.args, "--lockfile-only"]
        args += filter_pnpm_unique_args(self.config.install_args, args)
        self.runner.run(args)

    def collect_records(self, root_id: str) -> Dict[str, DependencyRecord]:
        args = ["ls", *self.config.args, "--json", "--long", "--depth", "Infinity"]
        # pnpm ls reports problems through its exit status but still prints the tree
        output = self.runner.run(args, tolerate_partial=True)
        return parse_pnpm_ls(output.stdout, root_id)

    def cache_root(self) -> Path:
        output = self.runner.run(["store", "path"])
        return map_store_to_cache(Path(output.stdout.strip()))
