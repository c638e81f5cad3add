"""
eedecomp: Per-residue electrostatic interaction energy decomposition over MD snapshots.

Modules:
    external:              subprocess wrapper and diagnostic log for external tools.
    structure_preparation: frame conversion, chain assignment, PDB2PQR parameterisation.
    variants:              Complex / Neutralized / Isolated PQR variant derivation.
    solver:                APBS input templating, invocation, energy line extraction.
    statistics:            streaming mean / sample SD and ΔE.
    pipeline:              snapshot discovery, scratch namespaces, per-frame processing.
"""

from eedecomp.external import (
    CollaboratorError,
    RunExternal,
)
from eedecomp.structure_preparation import (
    ConvertFrameToPDB,
    AssignChain,
    ParameterizeStructure,
    PrepareChargeStructure,
)
from eedecomp.variants import (
    ChargeRecord,
    MissingResidueWarning,
    ResidueSelector,
    VariantKind,
    DeriveVariants,
    NeutralizeResidue,
    IsolateResidue,
)
from eedecomp.solver import (
    PrepareSolverInput,
    RunSolver,
    ExtractEnergyLines,
)
from eedecomp.statistics import (
    RunningStats,
    SummaryStat,
    ComputeStats,
    ComputeDeltaE,
    FormatValue,
)
from eedecomp.pipeline import (
    DiscoverSnapshots,
    EnergyAccumulator,
    FrameResult,
    ProcessFrame,
    ScratchNamespace,
    ScratchStorageError,
)

__all__ = [
    "CollaboratorError",
    "RunExternal",
    "ConvertFrameToPDB",
    "AssignChain",
    "ParameterizeStructure",
    "PrepareChargeStructure",
    "ChargeRecord",
    "MissingResidueWarning",
    "ResidueSelector",
    "VariantKind",
    "DeriveVariants",
    "NeutralizeResidue",
    "IsolateResidue",
    "PrepareSolverInput",
    "RunSolver",
    "ExtractEnergyLines",
    "RunningStats",
    "SummaryStat",
    "ComputeStats",
    "ComputeDeltaE",
    "FormatValue",
    "DiscoverSnapshots",
    "EnergyAccumulator",
    "FrameResult",
    "ProcessFrame",
    "ScratchNamespace",
    "ScratchStorageError",
]
