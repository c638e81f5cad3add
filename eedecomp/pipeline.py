"""
Per-Frame Pipeline Module.

Building blocks used by ``run_pipeline.RunPipeline``:
  * snapshot discovery in sequence order,
  * a scratch namespace per frame that is always removed,
  * append-only energy accumulators (one per variant kind),
  * :func:`ProcessFrame`, the per-frame sub-pipeline
    (derive variants → write solver input → solve → extract energies).

:func:`ProcessFrame` has no side effects beyond its scratch directory and the
diagnostic log; it returns a :class:`FrameResult` which the caller folds into
the accumulators.

Naming conventions:
    Exported functions : PascalCase
    Public arguments   : camelCase
    Internal variables : snake_case
"""

import contextlib
import glob
import logging
import os
import re
import shutil
from typing import Callable, Dict, Iterable, List, NamedTuple, Optional

import numpy as np

from eedecomp.external import AppendDiagnosticLog, CollaboratorError
from eedecomp.solver import ExtractEnergyLines, PrepareSolverInput, RunSolver
from eedecomp.statistics import ParseField
from eedecomp.structure_preparation import PrepareChargeStructure
from eedecomp.variants import (
    TERMINATOR_LINES,
    DeriveVariants,
    ResidueSelector,
    VariantKind,
    WriteVariant,
)

logger = logging.getLogger(__name__)

_DIGITS_RE = re.compile(r"(\d+)")


class ScratchStorageError(OSError):
    """Per-frame scratch storage could not be created or removed."""


def _natural_key(path: str):
    name = os.path.basename(path)
    return [int(part) if part.isdigit() else part for part in _DIGITS_RE.split(name)]


def DiscoverSnapshots(inputDir: str = ".", pattern: str = "frame*.gro") -> List[str]:
    """List snapshot files matching *pattern* in sequence order.

    Digit runs compare numerically, so ``frame2.gro`` precedes
    ``frame10.gro``.

    Raises:
        FileNotFoundError: If no file matches.
    """
    matches = [
        path
        for path in glob.glob(os.path.join(inputDir, pattern))
        if os.path.isfile(path)
    ]
    if not matches:
        raise FileNotFoundError(
            f"No snapshot files matching '{pattern}' in {os.path.abspath(inputDir)}"
        )
    return sorted(matches, key=_natural_key)


@contextlib.contextmanager
def ScratchNamespace(scratchRoot: str, frameName: str):
    """Create ``<scratchRoot>/<frameName>/`` with one sub-directory per variant.

    The directory starts empty and is removed on exit, whether the body
    returns normally or raises.  If the body raised, a removal failure is
    logged and the body's exception propagates unchanged.

    Raises:
        ScratchStorageError: If the directory cannot be created, or cannot be
            removed after the body completed.
    """
    frame_dir = os.path.join(scratchRoot, frameName)
    try:
        if os.path.exists(frame_dir):
            shutil.rmtree(frame_dir)
        for kind in VariantKind:
            os.makedirs(os.path.join(frame_dir, kind.stem))
    except OSError as exc:
        raise ScratchStorageError(f"Cannot create scratch directory {frame_dir}: {exc}") from exc

    try:
        yield frame_dir
    except BaseException:
        try:
            shutil.rmtree(frame_dir)
        except OSError as exc:
            logger.error("Cannot remove scratch directory %s: %s", frame_dir, exc)
        raise
    try:
        shutil.rmtree(frame_dir)
    except OSError as exc:
        raise ScratchStorageError(f"Cannot remove scratch directory {frame_dir}: {exc}") from exc


class EnergyAccumulator:
    """Append-only log of raw energy lines for one variant kind."""

    def __init__(self, kind: VariantKind, path: str):
        self.kind = kind
        self.path = path
        self._lines: List[str] = []

    def Reset(self) -> None:
        self._lines = []
        with open(self.path, "w"):
            pass

    def Extend(self, lines: Iterable[str]) -> None:
        lines = list(lines)
        if not lines:
            return
        with open(self.path, "a") as fh:
            for line in lines:
                fh.write(line + "\n")
        self._lines.extend(lines)

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)


class FrameResult(NamedTuple):
    frameName: str
    energyLines: Dict[VariantKind, List[str]]
    energies: Dict[VariantKind, float]
    failures: Dict[VariantKind, Optional[str]]


def _first_energy(lines: List[str]) -> float:
    for line in lines:
        value = ParseField(line)
        if value is not None:
            return value
    return float(np.nan)


def _failed_frame(frameName: str, reason: str) -> FrameResult:
    return FrameResult(
        frameName,
        {kind: [] for kind in VariantKind},
        {kind: float(np.nan) for kind in VariantKind},
        {kind: reason for kind in VariantKind},
    )


def ProcessFrame(
    framePath: str,
    selector: ResidueSelector,
    templatePath: str,
    scratchRoot: str,
    diagnosticLogPath: Optional[str] = None,
    structurePreparer: Callable[..., str] = PrepareChargeStructure,
    solverRunner: Callable[..., tuple] = RunSolver,
    timeout: Optional[float] = None,
    **prepareKwargs,
) -> FrameResult:
    """Run the three variant sub-pipelines for one snapshot.

    Args:
        framePath: Snapshot file.
        selector: Residue under study.
        templatePath: Solver input template with an ``INPUT_NAME`` placeholder.
        scratchRoot: Parent directory of the frame's scratch namespace.
        diagnosticLogPath: Shared collaborator log.
        structurePreparer: ``(framePath, outputDir, diagnosticLogPath=...,
            timeout=..., **prepareKwargs) -> pqrPath``.
        solverRunner: ``(inputPath, diagnosticLogPath=..., timeout=...,
            outputPath=...) -> (outputText, returncode)``.
        timeout: Per-call limit in seconds for the external programs.
        **prepareKwargs: Forwarded to *structurePreparer* (``chainId``,
            ``forceField``, ``ph``, ``converter``).

    Returns:
        A :class:`FrameResult`.

    Raises:
        FileNotFoundError: If *framePath* does not exist.
        ScratchStorageError: If the scratch namespace cannot be managed.
    """
    if not os.path.isfile(framePath):
        raise FileNotFoundError(f"Snapshot file not found: {framePath}")

    frame_name = os.path.splitext(os.path.basename(framePath))[0]
    energy_lines: Dict[VariantKind, List[str]] = {}
    energies: Dict[VariantKind, float] = {}
    failures: Dict[VariantKind, Optional[str]] = {}

    with ScratchNamespace(scratchRoot, frame_name) as frame_dir:
        try:
            pqr_path = structurePreparer(
                framePath,
                frame_dir,
                diagnosticLogPath=diagnosticLogPath,
                timeout=timeout,
                **prepareKwargs,
            )
        except CollaboratorError as exc:
            logger.warning("Structure preparation failed for %s: %s", frame_name, exc)
            return _failed_frame(frame_name, f"preparation failed: {exc}")

        variants = DeriveVariants(pqr_path, selector, frameName=os.path.basename(framePath))
        if variants[VariantKind.ISOLATED] == list(TERMINATOR_LINES):
            AppendDiagnosticLog(
                diagnosticLogPath,
                f"Warning: Residue {selector} not found in {os.path.basename(framePath)}",
            )

        for kind, lines in variants.items():
            kind_dir = os.path.join(frame_dir, kind.stem)
            WriteVariant(lines, os.path.join(kind_dir, kind.pqrName))
            input_path = PrepareSolverInput(
                templatePath,
                kind.pqrName,
                os.path.join(kind_dir, f"{kind.stem}_apbs.in"),
            )
            output_text, returncode = solverRunner(
                input_path,
                diagnosticLogPath=diagnosticLogPath,
                timeout=timeout,
                outputPath=os.path.join(kind_dir, f"{kind.stem}_apbs.out"),
            )

            found = ExtractEnergyLines(output_text)
            if returncode != 0:
                failures[kind] = f"solver exit status {returncode}"
            elif not found:
                failures[kind] = "no energy line"
            else:
                failures[kind] = None
            if not found:
                logger.warning("No energy found for %s/%s", frame_name, kind.stem)

            energy_lines[kind] = found
            energies[kind] = _first_energy(found)

    return FrameResult(frame_name, energy_lines, energies, failures)
