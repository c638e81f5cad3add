"""
Variant Derivation Module.

From the charge-annotated complex (PQR) of one snapshot, derive the three
structures whose solvation energies make up the decomposition:

    Complex      the full enzyme with all charges.
    Neutralized  the full enzyme with the selected residue's charges zeroed.
    Isolated     the selected residue alone, closed with TER/END records.

PQR records are handled as typed :class:`ChargeRecord` objects that remember
the character span of every field, so the charge can be rewritten in place
without disturbing column alignment.

Naming conventions:
    Exported functions : PascalCase
    Public arguments   : camelCase
    Internal variables : snake_case
"""

import enum
import logging
import re
import warnings
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple, Union

logger = logging.getLogger(__name__)

NEUTRAL_CHARGE = "0.0000"
TERMINATOR_LINES = ("TER", "END")

# ATOM serial name resName [chainID] resSeq x y z charge radius
_MIN_RECORD_FIELDS = 10
_RECORD_TYPES = ("ATOM", "HETATM")
_FIELD_RE = re.compile(r"\S+")
# Fixed-width output runs chain and resSeq together from residue 1000 on: "A1000".
_CHAIN_RESSEQ_RE = re.compile(r"^([A-Za-z])(-?\d+)$")


class MissingResidueWarning(UserWarning):
    """The selected residue does not occur in a frame's structure."""


class VariantKind(enum.Enum):
    """The three structural variants, in processing order."""

    COMPLEX = "RES_enz"
    NEUTRALIZED = "no_RES"
    ISOLATED = "RES"

    @property
    def stem(self) -> str:
        return self.value

    @property
    def pqrName(self) -> str:
        return f"{self.value}.pqr"

    @property
    def accumulatorName(self) -> str:
        return f"ee_{self.value}.dat"

    @property
    def label(self) -> str:
        return self.name.lower()


class ResidueSelector(NamedTuple):
    name: str
    number: str

    @classmethod
    def From(cls, name: str, number: Union[str, int]) -> "ResidueSelector":
        """Build a selector, normalising *number* to an integer string."""
        name = str(name).strip()
        if not name:
            raise ValueError("Residue name must not be empty")
        try:
            number_int = int(str(number).strip())
        except ValueError as exc:
            raise ValueError(f"Residue number must be an integer, got '{number}'") from exc
        return cls(name, str(number_int))

    def __str__(self) -> str:
        return f"{self.name} {self.number}"


class ChargeRecord:
    """One ATOM/HETATM line of a PQR file with field positions.

    The charge and radius are always the last two fields and the x/y/z
    coordinates the three before them; residue name is the fourth field and
    the residue number sits right before the coordinates.  Without a chain
    identifier the charge is therefore field 9 (1-indexed).  A chain letter
    fused to the residue number (``A1000``) is split off.
    """

    __slots__ = ("line", "fields", "spans")

    def __init__(self, line: str, fields: List[str], spans: List[Tuple[int, int]]):
        self.line = line
        self.fields = fields
        self.spans = spans

    @classmethod
    def Parse(cls, line: str) -> Optional["ChargeRecord"]:
        """Return a record for an atom line, or ``None`` for anything else."""
        if not line.startswith(_RECORD_TYPES):
            return None
        matches = list(_FIELD_RE.finditer(line))
        if len(matches) < _MIN_RECORD_FIELDS:
            return None
        return cls(
            line,
            [m.group() for m in matches],
            [m.span() for m in matches],
        )

    @property
    def chargeIndex(self) -> int:
        return len(self.fields) - 2

    @property
    def residueName(self) -> str:
        return self.fields[3]

    @property
    def residueNumber(self) -> str:
        token = self.fields[len(self.fields) - 6]
        merged = _CHAIN_RESSEQ_RE.match(token)
        if merged:
            return merged.group(2)
        return token

    @property
    def charge(self) -> str:
        return self.fields[self.chargeIndex]

    def Matches(self, selector: ResidueSelector) -> bool:
        if self.residueName != selector.name:
            return False
        try:
            return int(self.residueNumber) == int(selector.number)
        except ValueError:
            return self.residueNumber == selector.number

    def WithCharge(self, value: str = NEUTRAL_CHARGE) -> str:
        """Return the line with the charge replaced, keeping the field width."""
        start, end = self.spans[self.chargeIndex]
        pad = max(0, (end - start) - len(value))
        return self.line[:start] + " " * pad + value + self.line[end:]


def _split_lines(pqrLines: Union[str, Iterable[str]]) -> List[str]:
    if isinstance(pqrLines, str):
        with open(pqrLines) as fh:
            return fh.read().splitlines()
    return [line.rstrip("\n") for line in pqrLines]


def NeutralizeResidue(lines: Iterable[str], selector: ResidueSelector) -> List[str]:
    """Copy *lines*, zeroing the charge of every record of the selected residue."""
    neutralized = []
    for line in lines:
        record = ChargeRecord.Parse(line)
        if record is not None and record.Matches(selector):
            line = record.WithCharge(NEUTRAL_CHARGE)
        neutralized.append(line)
    return neutralized


def IsolateResidue(lines: Iterable[str], selector: ResidueSelector) -> List[str]:
    """Return the selected residue's records followed by TER and END."""
    isolated = []
    for line in lines:
        record = ChargeRecord.Parse(line)
        if record is not None and record.Matches(selector):
            isolated.append(line)
    isolated.extend(TERMINATOR_LINES)
    return isolated


def DeriveVariants(
    pqrLines: Union[str, Iterable[str]],
    selector: ResidueSelector,
    frameName: Optional[str] = None,
) -> Dict[VariantKind, List[str]]:
    """Derive the Complex, Neutralized and Isolated variants of one frame.

    Args:
        pqrLines: Path to the complex PQR file, or its lines.
        selector: Residue under study.
        frameName: Snapshot name used in the missing-residue warning.

    Returns:
        Mapping of :class:`VariantKind` to the variant's lines (no trailing
        newlines), in processing order.

    Warns:
        MissingResidueWarning: If no record matches *selector*.  Isolated is
        then terminator-only and Neutralized is identical to Complex.
    """
    complex_lines = _split_lines(pqrLines)
    isolated = IsolateResidue(complex_lines, selector)

    n_matched = len(isolated) - len(TERMINATOR_LINES)
    if n_matched == 0:
        warnings.warn(
            f"Residue {selector} not found in {frameName or 'structure'}",
            MissingResidueWarning,
            stacklevel=2,
        )
    else:
        logger.debug("Residue %s: %d records in %s", selector, n_matched, frameName)

    return {
        VariantKind.COMPLEX: complex_lines,
        VariantKind.NEUTRALIZED: NeutralizeResidue(complex_lines, selector),
        VariantKind.ISOLATED: isolated,
    }


def WriteVariant(lines: Iterable[str], outputPath: str) -> str:
    with open(outputPath, "w") as fh:
        for line in lines:
            fh.write(line + "\n")
    return outputPath
