"""
External Collaborator Module.

Thin wrapper around :func:`subprocess.run` used for every third-party binary
the pipeline shells out to (GROMACS, pdb-tools, PDB2PQR, APBS).  All
collaborator output is appended to a single diagnostic log so that failed
frames can be inspected post-mortem.

Naming conventions:
    Exported functions : PascalCase
    Public arguments   : camelCase
    Internal variables : snake_case
"""

import logging
import os
import subprocess
from typing import List, NamedTuple, Optional

logger = logging.getLogger(__name__)


class CollaboratorError(RuntimeError):
    """An external program exited non-zero, timed out or could not start."""

    def __init__(self, command: List[str], returncode: Optional[int], output: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        if returncode is None:
            reason = "did not complete"
        else:
            reason = f"exited with status {returncode}"
        super().__init__(f"Command {' '.join(self.command)!r} {reason}")


class ExternalResult(NamedTuple):
    command: List[str]
    returncode: Optional[int]
    output: str
    timedOut: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timedOut


def AppendDiagnosticLog(diagnosticLogPath: Optional[str], text: str) -> None:
    """Append *text* to the shared diagnostic log (no-op when path is ``None``)."""
    if diagnosticLogPath is None or not text:
        return
    if not text.endswith("\n"):
        text += "\n"
    with open(diagnosticLogPath, "a") as fh:
        fh.write(text)


def _as_text(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode(errors="replace")
    return data


def RunExternal(
    command: List[str],
    diagnosticLogPath: Optional[str] = None,
    cwd: Optional[str] = None,
    timeout: Optional[float] = None,
    stdoutPath: Optional[str] = None,
    check: bool = True,
) -> ExternalResult:
    """Run an external collaborator and record its output.

    Args:
        command: Program and arguments, e.g. ``["gmx", "editconf", ...]``.
        diagnosticLogPath: Append-only log receiving a ``$ <command>`` header
            followed by the combined stdout/stderr of the process.
        cwd: Working directory for the child process.
        timeout: Wall-clock limit in seconds; ``None`` waits indefinitely.
        stdoutPath: If given, stdout is written to this file instead of the
            diagnostic log (stderr still goes to the log).  Used for tools
            such as ``pdb_chain`` that emit their result on stdout.
        check: Raise :class:`CollaboratorError` unless the process exits 0.

    Returns:
        An :class:`ExternalResult`.  ``returncode`` is ``None`` when the
        process timed out or could not be started.

    Raises:
        CollaboratorError: If *check* is ``True`` and the run did not succeed.
    """
    cmd = [str(part) for part in command]
    logger.debug("Running: %s", " ".join(cmd))
    AppendDiagnosticLog(diagnosticLogPath, "$ " + " ".join(cmd))

    stdout_fh = None
    try:
        if stdoutPath is not None:
            os.makedirs(os.path.dirname(os.path.abspath(stdoutPath)), exist_ok=True)
            stdout_fh = open(stdoutPath, "w")
        completed = subprocess.run(
            cmd,
            cwd=cwd,
            stdout=stdout_fh if stdout_fh is not None else subprocess.PIPE,
            stderr=subprocess.PIPE if stdout_fh is not None else subprocess.STDOUT,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as exc:
        output = _as_text(exc.output if stdout_fh is None else exc.stderr)
        AppendDiagnosticLog(diagnosticLogPath, output)
        AppendDiagnosticLog(diagnosticLogPath, f"# timed out after {timeout} s")
        logger.warning("%s timed out after %s s", cmd[0], timeout)
        result = ExternalResult(cmd, None, output, timedOut=True)
    except OSError as exc:
        AppendDiagnosticLog(diagnosticLogPath, f"# could not start: {exc}")
        logger.error("Could not start %s: %s", cmd[0], exc)
        result = ExternalResult(cmd, None, str(exc))
    else:
        output = _as_text(completed.stderr if stdout_fh is not None else completed.stdout)
        AppendDiagnosticLog(diagnosticLogPath, output)
        result = ExternalResult(cmd, completed.returncode, output)
    finally:
        if stdout_fh is not None:
            stdout_fh.close()

    if check and not result.ok:
        raise CollaboratorError(cmd, result.returncode, result.output)
    return result
