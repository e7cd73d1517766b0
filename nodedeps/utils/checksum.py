"""Single-pass multi-algorithm file checksums.

A file is read once in fixed-size chunks and every chunk is teed to one
hash sink per requested algorithm. Sinks are written concurrently and the
tee waits for all of them before moving to the next chunk.
"""

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from nodedeps.errors import ChecksumError

logger = logging.getLogger("nodedeps.utils.checksum")

CHUNK_SIZE = 64 * 1024


class Algorithm(str, Enum):
    """Supported checksum algorithms."""

    MD5 = "md5"
    SHA1 = "sha1"
    SHA256 = "sha256"


DEFAULT_ALGORITHMS: Tuple[Algorithm, ...] = (Algorithm.MD5, Algorithm.SHA1, Algorithm.SHA256)


class HashSink:
    """Write target that feeds a hashlib accumulator."""

    def __init__(self, algorithm: Algorithm):
        self.algorithm = algorithm
        self._hash = hashlib.new(algorithm.value)

    def write(self, data: bytes) -> int:
        self._hash.update(data)
        return len(data)

    def hexdigest(self) -> str:
        return self._hash.hexdigest()


class MultiSink:
    """Tee that writes each chunk to every sink.

    A failing sink is recorded and not written again. The sinks that are
    still healthy always finish the current chunk, so no write is left
    running when an error is raised.
    """

    def __init__(self, sinks: List[HashSink], executor: ThreadPoolExecutor):
        self.sinks = sinks
        self._executor = executor
        self.errors: List[Tuple[str, BaseException]] = []

    def write(self, chunk: bytes) -> int:
        """Write chunk to all sinks and wait for every write.

        Raises:
            ChecksumError: If any sink raised or wrote fewer bytes than given.
        """
        futures = {
            self._executor.submit(sink.write, chunk): sink for sink in self.sinks
        }
        wait(futures)

        failed: List[Tuple[str, BaseException]] = []
        for future, sink in futures.items():
            exc = future.exception()
            if exc is None:
                written = future.result()
                if written != len(chunk):
                    exc = IOError(f"short write: {written} of {len(chunk)} bytes")
            if exc is not None:
                failed.append((sink.algorithm.value, exc))

        if failed:
            self.errors.extend(failed)
            broken = {algo for algo, _ in failed}
            self.sinks = [s for s in self.sinks if s.algorithm.value not in broken]
            raise ChecksumError("failed to write checksum data", failed)
        return len(chunk)


def _normalize(algorithms: Optional[Iterable[Union[Algorithm, str]]]) -> List[Algorithm]:
    if not algorithms:
        return list(DEFAULT_ALGORITHMS)
    result: List[Algorithm] = []
    for algo in algorithms:
        algo = Algorithm(algo)
        if algo not in result:
            result.append(algo)
    return result


def _consume(chunks: Iterable[bytes], algorithms: List[Algorithm]) -> Dict[Algorithm, str]:
    sinks = [HashSink(algo) for algo in algorithms]
    with ThreadPoolExecutor(max_workers=len(sinks), thread_name_prefix="checksum") as executor:
        tee = MultiSink(list(sinks), executor)
        for chunk in chunks:
            tee.write(chunk)
    return {sink.algorithm: sink.hexdigest() for sink in sinks}


def calc_checksums(
    file_path: Union[str, Path],
    algorithms: Optional[Iterable[Union[Algorithm, str]]] = None,
) -> Dict[Algorithm, str]:
    """Calculate checksums of a file in a single read pass.

    Args:
        file_path: File to hash.
        algorithms: Algorithms to compute. Defaults to md5, sha1 and sha256.

    Returns:
        Dict[Algorithm, str]: Lowercase hex digest per requested algorithm.

    Raises:
        ChecksumError: If a hash sink fails.
        OSError: If the file cannot be read.
    """
    algos = _normalize(algorithms)
    path = Path(file_path)
    logger.debug("Calculating %s for %s", ",".join(a.value for a in algos), path)

    def _chunks():
        with open(path, "rb") as f:
            while True:
                chunk = f.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

    return _consume(_chunks(), algos)


def calc_checksum_bytes(
    data: bytes,
    algorithms: Optional[Iterable[Union[Algorithm, str]]] = None,
) -> Dict[Algorithm, str]:
    """Calculate checksums of in-memory content."""
    algos = _normalize(algorithms)
    chunks = (data[i:i + CHUNK_SIZE] for i in range(0, len(data), CHUNK_SIZE))
    return _consume(chunks, algos)
