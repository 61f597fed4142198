import json
import logging
from dataclasses import dataclass
from subprocess import PIPE, Popen, SubprocessError
from typing import List, Optional

from cattrs.errors import BaseValidationError

from pylsp_ruff_bridge.ruff import Check
from pylsp_ruff_bridge.settings import get_converter

log = logging.getLogger(__name__)
converter = get_converter()


class RuffError(Exception):
    """Base class for failures talking to ruff."""


class ProcessLaunchError(RuffError):
    """The ruff process could not be started."""


class ProcessStderrError(RuffError):
    """Ruff wrote to stderr; the invocation is considered failed."""


class MalformedOutputError(RuffError):
    """Ruff's stdout is not the JSON document we expected."""


@dataclass
class RuffResult:
    stdout: str
    stderr: str
    error: Optional[RuffError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RuffLinter:
    """
    Blocking adapter around the ruff executable.

    Each call spawns a fresh process, writes the document source to its
    standard input and waits for it to exit. There is no timeout.

    Parameters
    ----------
    executable : str
        Name or path of the ruff executable.
    """

    def __init__(self, executable: str = "ruff"):
        self.executable = executable

    def check(self, document_path: str, document_source: str) -> RuffResult:
        """Lint ``document_source``; stdout holds a JSON list of checks."""
        return self._run(document_path, document_source)

    def fix_only(self, document_path: str, document_source: str) -> RuffResult:
        """Autofix ``document_source``; stdout holds the rewritten source."""
        return self._run(document_path, document_source, ["--fix-only"])

    def _run(
        self,
        document_path: str,
        document_source: str,
        extra_arguments: Optional[List[str]] = None,
    ) -> RuffResult:
        cmd = [self.executable]
        cmd.extend(build_arguments(document_path, extra_arguments))
        log.debug(f"Calling {cmd} on '{document_path}'")
        try:
            p = Popen(cmd, stdin=PIPE, stdout=PIPE, stderr=PIPE)
        except (OSError, SubprocessError) as e:
            log.error(f"Can't execute ruff with given executable '{self.executable}'.")
            return RuffResult(stdout="", stderr="", error=ProcessLaunchError(str(e)))
        (stdout, stderr) = p.communicate(document_source.encode())

        result = RuffResult(
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
        )
        # Any stderr output is fatal, whatever the exit code
        if result.stderr:
            log.error(f"Error running ruff: {result.stderr}")
            result.error = ProcessStderrError(result.stderr)
        return result


def build_arguments(
    document_path: str,
    extra_arguments: Optional[List[str]] = None,
) -> List[str]:
    """
    Build arguments for ruff.

    Parameters
    ----------
    document_path : str
        Path of the document, empty for unsaved documents.
    extra_arguments : List[str]
        Extra arguments to pass to ruff, e.g. ``--fix-only``.

    Returns
    -------
    List containing the arguments.
    """
    args = ["check"]
    # Pass filename to ruff for per-file-ignores, catch unsaved
    if document_path != "":
        args.extend(["--stdin-filename", document_path])
    # Suppress update announcements
    args.append("--quiet")
    # Use the json formatting for easier evaluation
    args.append("--output-format=json")
    # Always force excludes
    args.append("--force-exclude")

    if extra_arguments:
        args.extend(extra_arguments)

    args.append("-")

    return args


def parse_checks(stdout: str) -> List[Check]:
    """
    Convert ruff's check-mode stdout into a list of checks.

    Raises
    ------
    MalformedOutputError
        If the output is not a JSON list of ruff checks.
    """
    # Catch empty list
    if stdout.strip() == "":
        return []

    try:
        result = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise MalformedOutputError(f"ruff output is not valid JSON: {e}") from e

    if not isinstance(result, list):
        raise MalformedOutputError("ruff output is not a JSON list")

    try:
        return converter.structure(result, List[Check])
    except (BaseValidationError, KeyError, TypeError, ValueError) as e:
        raise MalformedOutputError(f"Unexpected ruff output: {e}") from e
