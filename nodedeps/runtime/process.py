"""Invocation of package manager executables.

Tools are looked up on PATH, run synchronously with the project root as the
working directory, and their stdout/stderr captured separately. Package
managers print warnings on stderr even on success, so stderr is logged as a
warning rather than treated as failure.
"""

import logging
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

from packaging.version import Version

from nodedeps.errors import ExecutableNotFoundError, ToolExecutionError
from nodedeps.parsers.versions import parse_tool_version

logger = logging.getLogger("nodedeps.runtime.process")


@dataclass
class ToolOutput:
    """Captured result of one tool invocation."""

    stdout: str
    stderr: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def find_executable(tool: str) -> str:
    """Locate ``tool`` on the search path.

    Raises:
        ExecutableNotFoundError: If the executable can't be found.
    """
    path = shutil.which(tool)
    if not path:
        raise ExecutableNotFoundError(
            f"could not find the '{tool}' executable in the system PATH", tool=tool
        )
    logger.debug("Using %s executable: %s", tool, path)
    return path


class ToolRunner:
    """Runs one package manager inside a project directory.

    Args:
        tool: Executable name, e.g. "npm".
        cwd: Project root every command runs in.
        executable: Explicit executable path; looked up on PATH when omitted.
    """

    def __init__(self, tool: str, cwd: Union[str, Path], executable: Optional[str] = None):
        self.tool = tool
        self.cwd = Path(cwd)
        self.executable = executable or find_executable(tool)

    def command_line(self, args: Sequence[str]) -> str:
        return shlex.join([self.tool, *args])

    def run(self, args: Sequence[str], tolerate_partial: bool = False) -> ToolOutput:
        """Run the tool with ``args``.

        Args:
            args: Command arguments; blank entries are dropped.
            tolerate_partial: On a non-zero exit, return non-empty stdout
                instead of raising.

        Returns:
            ToolOutput: Captured output.

        Raises:
            ToolExecutionError: If the process fails and its output can't be
                used, or it can't be started at all.
        """
        argv: List[str] = [a for a in args if a.strip()]
        command = self.command_line(argv)
        logger.debug("Running '%s' in %s", command, self.cwd)
        try:
            proc = subprocess.run(
                [self.executable, *argv],
                cwd=str(self.cwd),
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            raise ToolExecutionError(
                f"failed to start {self.tool}: {exc}", tool=self.tool, command=command
            ) from exc

        output = ToolOutput(stdout=proc.stdout or "", stderr=proc.stderr or "", returncode=proc.returncode)
        if output.stderr.strip():
            logger.warning(
                "Encountered some issues while running '%s':\n%s", command, output.stderr.strip()
            )

        if output.ok:
            return output

        if tolerate_partial and output.stdout.strip():
            logger.warning(
                "'%s' exited with status %d; using its partial output",
                command,
                output.returncode,
            )
            return output

        raise ToolExecutionError(
            f"error while running '{command}' (exit status {output.returncode})",
            tool=self.tool,
            command=command,
            returncode=output.returncode,
            stderr=output.stderr,
            stdout=output.stdout,
        )

    def version(self) -> Version:
        """Return the parsed output of ``<tool> --version``."""
        output = self.run(["--version"])
        version = parse_tool_version(output.stdout)
        logger.debug("Using %s version %s", self.tool, version)
        return version
