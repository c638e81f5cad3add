"""
run_pipeline.py – Per-residue electrostatic interaction energy over a trajectory.

For every snapshot ``frame*.gro``:
  1. Structure Preparation : gmx editconf → pdb_chain → pdb2pqr (RES_enz.pqr).
  2. Variant Derivation    : complex (RES_enz), residue neutralised (no_RES),
                             residue alone (RES).
  3. Solving               : APBS on each variant; "Total electrostatic energy"
                             lines appended to ee_RES_enz.dat / ee_no_RES.dat /
                             ee_RES.dat.
Afterwards the mean and sample SD of each series and
ΔE = <RES_enz> - <no_RES> - <RES> are printed.

Usage (with GROMACS, pdb-tools, PDB2PQR and APBS on PATH)::

    python run_pipeline.py HIP 211 --template APBS_INPUT.in --output results/

Collaborator output goes to ``<outputDir>/apbs.log``; per-frame scratch
directories live under ``<outputDir>/scratch/`` only while a frame is
being processed.

Naming conventions:
    Public arguments   : camelCase (CLI flags are kebab-case equivalents)
    Internal variables : snake_case
"""

import argparse
import json
import logging
import os
import sys

import numpy as np

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logging.captureWarnings(True)
logger = logging.getLogger(__name__)

_DEFAULT_FRAME_PATTERN = "frame*.gro"
_DEFAULT_TEMPLATE = "APBS_INPUT.in"
_DEFAULT_TIMEOUT_S = 3600.0
_DIAGNOSTIC_LOG = "apbs.log"
_SCRATCH_DIR = "scratch"
_RULE = "-" * 59


class _UsageParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on usage errors."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _parse_args(argv=None):
    parser = _UsageParser(
        description="Electrostatic interaction energy of one residue over a trajectory",
        epilog="Ex.: run_pipeline.py HIP 211",
    )
    parser.add_argument("resname", help="Residue name, e.g. HIP.")
    parser.add_argument("resnumber", help="Residue number, e.g. 211.")
    parser.add_argument(
        "--input-dir",
        default=".",
        help="Directory containing the snapshot files (default: current directory).",
    )
    parser.add_argument(
        "--output",
        default=".",
        help="Directory for energy logs and summaries (default: current directory).",
    )
    parser.add_argument(
        "--frames",
        default=_DEFAULT_FRAME_PATTERN,
        help=f"Glob pattern for snapshot files (default: {_DEFAULT_FRAME_PATTERN}).",
    )
    parser.add_argument(
        "--template",
        default=_DEFAULT_TEMPLATE,
        help=f"APBS input template with an INPUT_NAME placeholder (default: {_DEFAULT_TEMPLATE}).",
    )
    parser.add_argument(
        "--chain",
        default="A",
        help="Chain identifier assigned before parameterisation (default: A).",
    )
    parser.add_argument(
        "--force-field",
        default="AMBER",
        help="PDB2PQR force field (default: AMBER).",
    )
    parser.add_argument(
        "--ph",
        type=float,
        default=None,
        help="Assign titration states with PROPKA at this pH (default: off).",
    )
    parser.add_argument(
        "--converter",
        choices=("gmx", "mdanalysis"),
        default="gmx",
        help="Frame-to-PDB conversion backend (default: gmx).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=_DEFAULT_TIMEOUT_S,
        help="Per-call limit in seconds for external programs; 0 disables (default: 3600).",
    )
    args = parser.parse_args(argv)
    try:
        int(args.resnumber)
    except ValueError:
        parser.error(f"residue number must be an integer, got '{args.resnumber}'")
    return args


def _write_energy_table(frame_results, output_path: str) -> str:
    """One row per frame; NaN marks a variant without an energy observation."""
    from eedecomp.statistics import FormatValue
    from eedecomp.variants import VariantKind

    header = "frame," + ",".join(kind.label for kind in VariantKind)
    rows = np.array(
        [
            [result.frameName] + [FormatValue(result.energies[kind]) for kind in VariantKind]
            for result in frame_results
        ],
        dtype=object,
    ).reshape(len(frame_results), 1 + len(VariantKind))
    np.savetxt(
        output_path,
        rows,
        delimiter=",",
        header=header,
        comments="",
        fmt="%s",
    )
    logger.info("Per-frame energies written to %s", output_path)
    return output_path


def _json_number(value: float):
    return None if np.isnan(value) else value


def FormatSummary(stats: dict, deltaE: float) -> str:
    """Render the end-of-run summary block."""
    from eedecomp.statistics import FormatValue
    from eedecomp.variants import VariantKind

    complex_stat = stats[VariantKind.COMPLEX]
    isolated_stat = stats[VariantKind.ISOLATED]
    neutral_stat = stats[VariantKind.NEUTRALIZED]
    return "\n".join(
        [
            "",
            _RULE,
            f"RES_enz : mean = {FormatValue(complex_stat.mean)}   SD = {FormatValue(complex_stat.sd)}",
            f"RES     : mean = {FormatValue(isolated_stat.mean)}       SD = {FormatValue(isolated_stat.sd)}",
            f"no_RES  : mean = {FormatValue(neutral_stat.mean)}    SD = {FormatValue(neutral_stat.sd)}",
            "",
            f"ΔE = <RES_enz> - <no_RES> - <RES> = {FormatValue(deltaE)} kJ/mol",
            _RULE,
            "",
        ]
    )


def RunPipeline(
    residueName: str,
    residueNumber,
    inputDir: str = ".",
    outputDir: str = ".",
    framePattern: str = _DEFAULT_FRAME_PATTERN,
    templatePath: str = _DEFAULT_TEMPLATE,
    chainId: str = "A",
    forceField: str = "AMBER",
    ph: float = None,
    converter: str = "gmx",
    timeout: float = _DEFAULT_TIMEOUT_S,
    structurePreparer=None,
    solverRunner=None,
) -> dict:
    """Run the per-frame decomposition and reduce it to summary statistics.

    Args:
        residueName: Residue name of the selected residue (e.g. ``"HIP"``).
        residueNumber: Residue number (integer or integer-like string).
        inputDir: Directory holding the snapshot files.
        outputDir: Directory for energy logs, diagnostic log and summaries.
        framePattern: Glob pattern selecting the snapshots.
        templatePath: APBS input template with an ``INPUT_NAME`` placeholder.
        chainId: Chain identifier assigned by ``pdb_chain``.
        forceField: PDB2PQR force field.
        ph: Optional pH for PROPKA titration state assignment.
        converter: ``"gmx"`` or ``"mdanalysis"`` frame conversion backend.
        timeout: Per-call limit in seconds; ``None`` or ``<= 0`` disables it.
        structurePreparer: Replacement for
            :func:`~eedecomp.structure_preparation.PrepareChargeStructure`.
        solverRunner: Replacement for :func:`~eedecomp.solver.RunSolver`.

    Returns:
        Dictionary with ``"stats"`` (``{kind label: SummaryStat}``),
        ``"delta_e"``, ``"n_frames"``, ``"accumulators"`` (``{kind label:
        path}``), ``"energies_csv"``, ``"diagnostic_log"`` and
        ``"summary_json"``.

    Raises:
        FileNotFoundError: If the template or the snapshots are missing.
        ScratchStorageError: If per-frame scratch storage fails.
    """
    from eedecomp.pipeline import DiscoverSnapshots, EnergyAccumulator, ProcessFrame
    from eedecomp.solver import RunSolver
    from eedecomp.statistics import Accumulate, ComputeDeltaE
    from eedecomp.structure_preparation import PrepareChargeStructure
    from eedecomp.variants import ResidueSelector, VariantKind

    selector = ResidueSelector.From(residueName, residueNumber)
    if timeout is not None and timeout <= 0:
        timeout = None

    if not os.path.isfile(templatePath):
        raise FileNotFoundError(f"Solver input template not found: {templatePath}")
    template_path = os.path.abspath(templatePath)

    os.makedirs(outputDir, exist_ok=True)
    scratch_root = os.path.join(outputDir, _SCRATCH_DIR)
    diagnostic_log = os.path.join(outputDir, _DIAGNOSTIC_LOG)
    with open(diagnostic_log, "w"):
        pass

    # ------------------------------------------------------------------ #
    # Idle: reset accumulators, enumerate snapshots                        #
    # ------------------------------------------------------------------ #
    accumulators = {
        kind: EnergyAccumulator(kind, os.path.join(outputDir, kind.accumulatorName))
        for kind in VariantKind
    }
    for accumulator in accumulators.values():
        accumulator.Reset()

    snapshots = DiscoverSnapshots(inputDir, framePattern)
    logger.info("Residue %s: %d snapshots to process", selector, len(snapshots))

    # ------------------------------------------------------------------ #
    # PerFrame: one snapshot at a time, folded in sequence order           #
    # ------------------------------------------------------------------ #
    frame_results = []
    for frame_path in snapshots:
        logger.info("Processing %s ...", os.path.basename(frame_path))
        result = ProcessFrame(
            frame_path,
            selector,
            template_path,
            scratch_root,
            diagnosticLogPath=diagnostic_log,
            structurePreparer=structurePreparer or PrepareChargeStructure,
            solverRunner=solverRunner or RunSolver,
            timeout=timeout,
            chainId=chainId,
            forceField=forceField,
            ph=ph,
            converter=converter,
        )
        for kind, accumulator in accumulators.items():
            accumulator.Extend(result.energyLines[kind])
        frame_results.append(result)

    if os.path.isdir(scratch_root) and not os.listdir(scratch_root):
        os.rmdir(scratch_root)

    # ------------------------------------------------------------------ #
    # Reducing                                                             #
    # ------------------------------------------------------------------ #
    stats = {kind: Accumulate(acc.lines).Summary() for kind, acc in accumulators.items()}
    delta_e = ComputeDeltaE(
        stats[VariantKind.COMPLEX].mean,
        stats[VariantKind.NEUTRALIZED].mean,
        stats[VariantKind.ISOLATED].mean,
    )
    for kind, stat in stats.items():
        if stat.n < len(snapshots):
            logger.warning(
                "%s: %d of %d frames yielded an energy", kind.stem, stat.n, len(snapshots)
            )

    # ------------------------------------------------------------------ #
    # Done                                                                 #
    # ------------------------------------------------------------------ #
    print(FormatSummary(stats, delta_e))

    energies_csv = _write_energy_table(frame_results, os.path.join(outputDir, "energies.csv"))

    results = {
        "residue": str(selector),
        "n_frames": len(snapshots),
        "stats": {kind.label: stats[kind] for kind in VariantKind},
        "delta_e": delta_e,
        "accumulators": {kind.label: accumulators[kind].path for kind in VariantKind},
        "energies_csv": energies_csv,
        "diagnostic_log": diagnostic_log,
    }

    summary_path = os.path.join(outputDir, "pipeline_summary.json")
    with open(summary_path, "w") as fh:
        json.dump(
            {
                "residue": results["residue"],
                "n_frames": results["n_frames"],
                "stats": {
                    label: {
                        "mean": _json_number(stat.mean),
                        "sd": _json_number(stat.sd),
                        "n": stat.n,
                    }
                    for label, stat in results["stats"].items()
                },
                "delta_e": _json_number(delta_e),
                "accumulators": results["accumulators"],
                "energies_csv": energies_csv,
                "diagnostic_log": diagnostic_log,
            },
            fh,
            indent=2,
        )
    results["summary_json"] = summary_path

    logger.info("Pipeline complete. Summary: %s", summary_path)
    return results


def main(argv=None):
    args = _parse_args(argv)

    RunPipeline(
        residueName=args.resname,
        residueNumber=args.resnumber,
        inputDir=args.input_dir,
        outputDir=args.output,
        framePattern=args.frames,
        templatePath=args.template,
        chainId=args.chain,
        forceField=args.force_field,
        ph=args.ph,
        converter=args.converter,
        timeout=args.timeout,
    )
    print("Done.")


if __name__ == "__main__":
    sys.exit(main())
