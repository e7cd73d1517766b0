"""Resolver for the cacache on-disk layout shared by npm and pnpm.

Layout (relative to the cache root):

* ``content-v2/<algo>/<hex[0:2]>/<hex[2:4]>/<hex[4:]>`` holds tarballs,
  addressed by the decoded integrity digest.
* ``index-v5/<h[0:2]>/<h[2:4]>/<h[4:]>`` holds index buckets, addressed by
  the sha256 of ``pacote:tarball:<name>@<version>``.

Nothing here writes to the cache.
"""

import base64
import binascii
import hashlib
import json
import logging
from pathlib import Path
from typing import Tuple, Union

from nodedeps.errors import CacheError, CacheMissError

logger = logging.getLogger("nodedeps.cache.cacache")

CONTENT_DIR = "content-v2"
INDEX_DIR = "index-v5"
TARBALL_KEY_PREFIX = "pacote:tarball"

# Two shard levels of two characters each, plus at least one for the file name
_MIN_HEX_LENGTH = 5


def integrity_to_hex(integrity: str) -> Tuple[str, str]:
    """Split an integrity string and hex-encode its digest.

    Args:
        integrity: Value of the form ``<algo>-<base64digest>``.

    Returns:
        Tuple[str, str]: (algorithm, hex digest).

    Raises:
        CacheError: If the value is malformed or the digest is too short.
    """
    algo, sep, b64 = integrity.partition("-")
    if not sep or not algo:
        raise CacheError(f"invalid integrity string: {integrity!r}")
    try:
        raw = base64.b64decode(b64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CacheError(f"invalid integrity digest in {integrity!r}: {exc}") from exc
    digest = raw.hex()
    if len(digest) < _MIN_HEX_LENGTH:
        raise CacheError(f"integrity digest too short: {integrity!r}")
    return algo, digest


def _shard(root: Path, digest: str) -> Path:
    return root / digest[0:2] / digest[2:4] / digest[4:]


class CacacheResolver:
    """Locates tarballs and index entries inside one cacache directory.

    Args:
        cache_root: The ``_cacache`` directory (npm) or the mapped pnpm cache.
    """

    def __init__(self, cache_root: Union[str, Path]):
        self.cache_root = Path(cache_root)

    def __repr__(self) -> str:
        return f"CacacheResolver({str(self.cache_root)!r})"

    def tarball_path(self, integrity: str) -> Path:
        """Compute the content path for an integrity string without touching disk."""
        algo, digest = integrity_to_hex(integrity)
        return _shard(self.cache_root / CONTENT_DIR / algo, digest)

    def resolve_tarball_path(self, integrity: str) -> Path:
        """Return the cached tarball path for an integrity string.

        Raises:
            CacheError: If the integrity string is malformed.
            CacheMissError: If no file exists at the computed path.
        """
        path = self.tarball_path(integrity)
        if not path.is_file():
            raise CacheMissError(f"tarball for {integrity} not found in cache: {path}")
        return path

    def index_path(self, name: str, version: str) -> Path:
        key = f"{TARBALL_KEY_PREFIX}:{name}@{version}"
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return _shard(self.cache_root / INDEX_DIR, digest)

    def resolve_integrity(self, name: str, version: str) -> str:
        """Look up the integrity recorded in the index for name@version.

        The bucket file starts with an empty line followed by
        ``<hash>\\t<json>``; only those two lines are read.

        Raises:
            CacheMissError: If the index bucket does not exist.
            CacheError: If the bucket content is malformed.
        """
        path = self.index_path(name, version)
        if not path.is_file():
            raise CacheMissError(f"index entry for {name}@{version} not found: {path}")

        lines = []
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                lines.append(line.rstrip("\n"))
                if len(lines) == 2:
                    break
        if len(lines) < 2:
            raise CacheError(f"index entry {path} has fewer than two lines")

        fields = lines[1].split("\t")
        if len(fields) != 2:
            raise CacheError(
                f"index entry {path} has {len(fields)} tab-separated fields, expected 2"
            )
        try:
            entry = json.loads(fields[1])
        except json.JSONDecodeError as exc:
            raise CacheError(f"index entry {path} is not valid JSON: {exc}") from exc

        integrity = entry.get("integrity") if isinstance(entry, dict) else None
        if not integrity:
            raise CacheError(f"index entry {path} has no integrity")
        logger.debug("Resolved integrity of %s@%s from index", name, version)
        return integrity
