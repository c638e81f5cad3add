"""
Statistics Module.

Streaming mean / sample standard deviation over the energy column of the
accumulated solver lines, plus the interaction energy
ΔE = <Complex> - <Neutralized> - <Isolated>.  Missing data propagates as NaN.

Naming conventions:
    Exported functions : PascalCase
    Public arguments   : camelCase
    Internal variables : snake_case
"""

import math
import re
from typing import Iterable, NamedTuple, Optional, Tuple

import numpy as np

NUMERIC_TOKEN = re.compile(r"^[-+]?[0-9]*\.?[0-9]+([eE][-+]?[0-9]+)?$")

# "Total electrostatic energy = <value> kJ/mol" -> value is field 5.
ENERGY_FIELD = 5


class SummaryStat(NamedTuple):
    mean: float
    sd: float
    n: int


def ParseField(line: str, field: int = ENERGY_FIELD) -> Optional[float]:
    """Return the 1-indexed whitespace *field* of *line* if it is numeric."""
    tokens = line.split()
    if len(tokens) < field:
        return None
    token = tokens[field - 1]
    if not NUMERIC_TOKEN.match(token):
        return None
    return float(token)


class RunningStats:
    """Running count, mean and sum of squared deviations (Welford update)."""

    def __init__(self):
        self.count = 0
        self.total = 0.0
        self.spread = 0.0
        self._mean = 0.0

    def Push(self, value: float) -> None:
        self.count += 1
        self.total += value
        delta = value - self._mean
        self._mean += delta / self.count
        self.spread += delta * (value - self._mean)

    @property
    def mean(self) -> float:
        if self.count == 0:
            return float(np.nan)
        return self._mean

    @property
    def sd(self) -> float:
        if self.count == 0:
            return float(np.nan)
        if self.count == 1:
            return 0.0
        # Identical values leave spread at exactly 0.
        return math.sqrt(max(self.spread, 0.0) / (self.count - 1))

    def Summary(self) -> SummaryStat:
        return SummaryStat(self.mean, self.sd, self.count)


def Accumulate(logLines: Iterable[str], field: int = ENERGY_FIELD) -> RunningStats:
    """Fold every numeric *field* value of *logLines* into a RunningStats."""
    stats = RunningStats()
    for line in logLines:
        value = ParseField(line, field)
        if value is not None:
            stats.Push(value)
    return stats


def ComputeStats(logLines: Iterable[str], field: int = ENERGY_FIELD) -> Tuple[float, float]:
    """Mean and sample standard deviation of field *field* over *logLines*.

    Lines whose field is absent or not a number are skipped.

    Returns:
        ``(mean, sd)``: ``(nan, nan)`` for no values, ``(x, 0.0)`` for one.
    """
    stats = Accumulate(logLines, field)
    return stats.mean, stats.sd


def ComputeDeltaE(meanComplex: float, meanNeutralized: float, meanIsolated: float) -> float:
    """ΔE = <Complex> - <Neutralized> - <Isolated>; NaN if any mean is NaN."""
    if any(np.isnan(v) for v in (meanComplex, meanNeutralized, meanIsolated)):
        return float(np.nan)
    return meanComplex - meanNeutralized - meanIsolated


def FormatValue(value: float) -> str:
    if np.isnan(value):
        return "nan"
    return f"{value:.10e}"
