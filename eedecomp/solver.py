"""
Solver Module.

APBS invocation and energy harvesting:
  * :func:`PrepareSolverInput` fills the solver input template for one variant.
  * :func:`RunSolver` runs the solver and captures its text output.
  * :func:`ExtractEnergyLines` picks the "Total electrostatic energy" lines.

A failing solver never aborts the pipeline: the failure is logged and the
energy extraction simply finds nothing.

Naming conventions:
    Exported functions : PascalCase
    Public arguments   : camelCase
    Internal variables : snake_case
"""

import logging
import os
from typing import List, Optional, Tuple

from eedecomp.external import RunExternal

logger = logging.getLogger(__name__)

INPUT_PLACEHOLDER = "INPUT_NAME"
ENERGY_LABEL = "Total electrostatic energy"

_DEFAULT_SOLVER = "apbs"


def PrepareSolverInput(
    templatePath: str,
    structureFileName: str,
    outputPath: str,
    placeholder: str = INPUT_PLACEHOLDER,
) -> str:
    """Write a solver input file from *templatePath* for one structure.

    Every occurrence of *placeholder* in the template is replaced by
    *structureFileName* (a name relative to the input file's directory).

    Returns:
        Path of the written input file.

    Raises:
        FileNotFoundError: If *templatePath* does not exist.
    """
    if not os.path.isfile(templatePath):
        raise FileNotFoundError(f"Solver input template not found: {templatePath}")

    with open(templatePath) as fh:
        template = fh.read()

    if placeholder not in template:
        logger.warning(
            "Template %s has no '%s' placeholder; input copied unchanged",
            templatePath,
            placeholder,
        )

    with open(outputPath, "w") as fh:
        fh.write(template.replace(placeholder, structureFileName))
    return outputPath


def RunSolver(
    inputPath: str,
    diagnosticLogPath: Optional[str] = None,
    solverExecutable: str = _DEFAULT_SOLVER,
    timeout: Optional[float] = None,
    outputPath: Optional[str] = None,
) -> Tuple[str, Optional[int]]:
    """Run the electrostatics solver on one input file.

    The solver runs inside the input file's directory so that relative
    structure names in the input resolve to the variant's PQR.

    Args:
        inputPath: Solver input written by :func:`PrepareSolverInput`.
        diagnosticLogPath: Shared collaborator log.
        solverExecutable: Solver binary (default ``"apbs"``).
        timeout: Limit in seconds; ``None`` waits indefinitely.
        outputPath: Optional file receiving a copy of the solver output.

    Returns:
        ``(outputText, returncode)``; *returncode* is ``None`` when the
        solver timed out or could not be started.
    """
    work_dir = os.path.dirname(os.path.abspath(inputPath))
    result = RunExternal(
        [solverExecutable, os.path.basename(inputPath)],
        diagnosticLogPath=diagnosticLogPath,
        cwd=work_dir,
        timeout=timeout,
        check=False,
    )

    if outputPath is not None:
        with open(outputPath, "w") as fh:
            fh.write(result.output)

    if result.timedOut:
        logger.warning("Solver timed out on %s after %s s", inputPath, timeout)
    elif result.returncode != 0:
        logger.warning(
            "Solver failed on %s (exit status %s); see diagnostic log",
            inputPath,
            result.returncode,
        )
    return result.output, result.returncode


def ExtractEnergyLines(outputText: str, label: str = ENERGY_LABEL) -> List[str]:
    """Return every line of *outputText* that contains *label*, verbatim."""
    return [line for line in outputText.splitlines() if label in line]
