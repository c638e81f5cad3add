"""
Structure Preparation Module.

Turns one trajectory snapshot into a charge/radius annotated PQR file:
  1. Frame conversion to PDB via GROMACS ``editconf`` (or MDAnalysis).
  2. Chain identifier assignment via pdb-tools ``pdb_chain``.
  3. Charge and radius parameterisation via PDB2PQR (optionally with
     PROPKA-based protonation at a given pH).

Each step is an external collaborator; the functions here only build the
command line, check inputs and hand back the output path.

Naming conventions:
    Exported functions : PascalCase
    Public arguments   : camelCase
    Internal variables : snake_case
"""

import logging
import os
from typing import Optional

from eedecomp.external import CollaboratorError, RunExternal

logger = logging.getLogger(__name__)

_CONVERTED_PDB = "current.pdb"
_CHAIN_PDB_TEMPLATE = "current_CHAIN_{chain}.pdb"
_COMPLEX_PQR = "RES_enz.pqr"


def _require_file(path: str, what: str) -> None:
    if not os.path.isfile(path):
        raise FileNotFoundError(f"{what} not found: {path}")


def _require_output(command, path: str) -> str:
    # Some tools exit 0 without writing anything (e.g. pdb2pqr on an empty
    # structure); treat that as a collaborator failure too.
    if not os.path.isfile(path) or os.path.getsize(path) == 0:
        raise CollaboratorError(command, 0, f"no output written to {path}")
    return os.path.abspath(path)


def ConvertFrameToPDB(
    framePath: str,
    outputPdbPath: str,
    diagnosticLogPath: Optional[str] = None,
    backend: str = "gmx",
    gmxExecutable: str = "gmx",
    timeout: Optional[float] = None,
) -> str:
    """Convert a trajectory frame (e.g. ``.gro``) to a PDB file.

    Args:
        framePath: Path to the snapshot file.
        outputPdbPath: Path where the PDB will be written.
        diagnosticLogPath: Shared collaborator log.
        backend: ``"gmx"`` (default) runs ``gmx editconf``; ``"mdanalysis"``
            converts in-process with MDAnalysis.
        gmxExecutable: Name or path of the GROMACS driver binary.
        timeout: Limit in seconds for the external call.

    Returns:
        Absolute path of the written PDB file.

    Raises:
        FileNotFoundError: If *framePath* does not exist.
        ValueError: If *backend* is not recognised.
        CollaboratorError: If the conversion fails.
        ImportError: If ``backend="mdanalysis"`` and MDAnalysis is absent.
    """
    _require_file(framePath, "Snapshot file")
    os.makedirs(os.path.dirname(os.path.abspath(outputPdbPath)), exist_ok=True)

    if backend == "gmx":
        cmd = [gmxExecutable, "editconf", "-f", framePath, "-o", outputPdbPath]
        RunExternal(cmd, diagnosticLogPath=diagnosticLogPath, timeout=timeout)
        return _require_output(cmd, outputPdbPath)

    if backend != "mdanalysis":
        raise ValueError(f"backend must be 'gmx' or 'mdanalysis', got '{backend}'")

    try:
        import MDAnalysis as mda
    except ImportError as exc:
        raise ImportError("MDAnalysis is required for the mdanalysis backend") from exc

    logger.debug("Converting %s with MDAnalysis", framePath)
    try:
        universe = mda.Universe(framePath)
        universe.atoms.write(outputPdbPath)
    except (OSError, ValueError) as exc:
        raise CollaboratorError(["MDAnalysis", framePath], None, str(exc)) from exc
    return _require_output(["MDAnalysis", framePath], outputPdbPath)


def AssignChain(
    inputPdbPath: str,
    outputPdbPath: str,
    chainId: str = "A",
    diagnosticLogPath: Optional[str] = None,
    timeout: Optional[float] = None,
) -> str:
    """Set the chain identifier of every record with ``pdb_chain``.

    Args:
        inputPdbPath: PDB produced by :func:`ConvertFrameToPDB`.
        outputPdbPath: Where the re-chained PDB is written.
        chainId: Single-character chain identifier (default ``"A"``).
        diagnosticLogPath: Shared collaborator log (receives stderr only).
        timeout: Limit in seconds for the external call.

    Returns:
        Absolute path of the written PDB file.
    """
    if len(chainId) != 1:
        raise ValueError(f"chainId must be a single character, got '{chainId}'")
    _require_file(inputPdbPath, "Input PDB")

    cmd = ["pdb_chain", f"-{chainId}", inputPdbPath]
    RunExternal(
        cmd,
        diagnosticLogPath=diagnosticLogPath,
        timeout=timeout,
        stdoutPath=outputPdbPath,
    )
    return _require_output(cmd, outputPdbPath)


def ParameterizeStructure(
    inputPdbPath: str,
    outputPqrPath: str,
    forceField: str = "AMBER",
    ph: Optional[float] = None,
    keepChain: bool = True,
    diagnosticLogPath: Optional[str] = None,
    timeout: Optional[float] = None,
) -> str:
    """Assign charges and radii with PDB2PQR.

    When *ph* is given, PDB2PQR is asked to assign titration states with
    PROPKA at that pH before writing the PQR.

    Args:
        inputPdbPath: Chain-labelled PDB.
        outputPqrPath: Where the PQR is written.
        forceField: PDB2PQR force field name (default ``"AMBER"``).
        ph: Optional pH for PROPKA titration state assignment.
        keepChain: Keep the chain identifier column in the PQR output.
        diagnosticLogPath: Shared collaborator log.
        timeout: Limit in seconds for the external call.

    Returns:
        Absolute path of the written PQR file.
    """
    _require_file(inputPdbPath, "Input PDB")
    os.makedirs(os.path.dirname(os.path.abspath(outputPqrPath)), exist_ok=True)

    cmd = ["pdb2pqr", "--ff", forceField]
    if keepChain:
        cmd.append("--keep-chain")
    if ph is not None:
        cmd.extend(["--titration-state-method", "propka", "--with-ph", f"{ph:g}"])
    cmd.extend([inputPdbPath, outputPqrPath])

    RunExternal(cmd, diagnosticLogPath=diagnosticLogPath, timeout=timeout)
    return _require_output(cmd, outputPqrPath)


def PrepareChargeStructure(
    framePath: str,
    outputDir: str,
    diagnosticLogPath: Optional[str] = None,
    chainId: str = "A",
    forceField: str = "AMBER",
    ph: Optional[float] = None,
    converter: str = "gmx",
    timeout: Optional[float] = None,
) -> str:
    """Run conversion, chain assignment and parameterisation for one frame.

    Intermediate files (``current.pdb``, ``current_CHAIN_<id>.pdb``) and the
    resulting ``RES_enz.pqr`` are all written inside *outputDir*, which is
    expected to be the frame's scratch namespace.

    Returns:
        Absolute path of the complex PQR file.
    """
    logger.debug("Preparing charge structure for %s", framePath)
    pdb_path = ConvertFrameToPDB(
        framePath,
        os.path.join(outputDir, _CONVERTED_PDB),
        diagnosticLogPath=diagnosticLogPath,
        backend=converter,
        timeout=timeout,
    )
    chain_pdb = AssignChain(
        pdb_path,
        os.path.join(outputDir, _CHAIN_PDB_TEMPLATE.format(chain=chainId)),
        chainId=chainId,
        diagnosticLogPath=diagnosticLogPath,
        timeout=timeout,
    )
    return ParameterizeStructure(
        chain_pdb,
        os.path.join(outputDir, _COMPLEX_PQR),
        forceField=forceField,
        ph=ph,
        diagnosticLogPath=diagnosticLogPath,
        timeout=timeout,
    )
