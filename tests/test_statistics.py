"""
Tests for eedecomp.statistics.

Pure-Python / NumPy tests; no external programs are needed.
"""

import math
import random
import unittest

from eedecomp.statistics import (
    NUMERIC_TOKEN,
    Accumulate,
    ComputeDeltaE,
    ComputeStats,
    FormatValue,
    ParseField,
    RunningStats,
)


def _energy_line(value) -> str:
    return f"  Total electrostatic energy = {value} kJ/mol"


# ---------------------------------------------------------------------------
# Numeric token validation
# ---------------------------------------------------------------------------
class TestNumericToken(unittest.TestCase):
    def test_accepts_plain_and_signed_numbers(self):
        for token in ("12", "-120.0", "+3.5", ".5", "-.25", "0.0000"):
            self.assertTrue(NUMERIC_TOKEN.match(token), token)

    def test_accepts_exponent(self):
        for token in ("1.234E+03", "-4.5e-2", "7e10"):
            self.assertTrue(NUMERIC_TOKEN.match(token), token)

    def test_rejects_non_numeric(self):
        for token in ("=", "kJ/mol", "nan", "1.2.3", "1e", "--1", ""):
            self.assertIsNone(NUMERIC_TOKEN.match(token), token)


class TestParseField(unittest.TestCase):
    def test_field_five_of_apbs_line(self):
        self.assertAlmostEqual(ParseField(_energy_line("-120.0")), -120.0)

    def test_scientific_value(self):
        self.assertAlmostEqual(ParseField(_energy_line("1.234E+03")), 1234.0)

    def test_non_numeric_field_is_none(self):
        self.assertIsNone(ParseField("  Total electrostatic energy = n/a kJ/mol"))

    def test_short_line_is_none(self):
        self.assertIsNone(ParseField("Total electrostatic energy"))

    def test_custom_field(self):
        self.assertAlmostEqual(ParseField("a b 3.5", field=3), 3.5)


# ---------------------------------------------------------------------------
# ComputeStats
# ---------------------------------------------------------------------------
class TestComputeStats(unittest.TestCase):
    def test_empty_gives_nan_nan(self):
        mean, sd = ComputeStats([])
        self.assertTrue(math.isnan(mean))
        self.assertTrue(math.isnan(sd))

    def test_only_invalid_lines_gives_nan_nan(self):
        mean, sd = ComputeStats(["garbage", _energy_line("abc")])
        self.assertTrue(math.isnan(mean))
        self.assertTrue(math.isnan(sd))

    def test_single_value_has_zero_sd(self):
        mean, sd = ComputeStats([_energy_line("-42.5")])
        self.assertEqual(mean, -42.5)
        self.assertEqual(sd, 0.0)

    def test_identical_values_have_zero_sd(self):
        mean, sd = ComputeStats([_energy_line("-120.0")] * 3)
        self.assertEqual(FormatValue(mean), "-1.2000000000e+02")
        self.assertEqual(sd, 0.0)

    def test_identical_awkward_values_have_exactly_zero_sd(self):
        for value in ("0.1", "-123.456", "1.1", "0.3", "-1.5e+03"):
            for n in (2, 3, 5, 7, 10):
                with self.subTest(value=value, n=n):
                    mean, sd = ComputeStats([_energy_line(value)] * n)
                    self.assertEqual(mean, float(value))
                    self.assertEqual(sd, 0.0)

    def test_sample_sd(self):
        lines = [_energy_line(v) for v in ("-100.0", "-110.0", "-90.0")]
        mean, sd = ComputeStats(lines)
        self.assertEqual(FormatValue(mean), "-1.0000000000e+02")
        self.assertEqual(FormatValue(sd), "1.0000000000e+01")

    def test_invalid_lines_are_skipped_not_zeroed(self):
        lines = [
            _energy_line("-100.0"),
            "APBS warning line",
            _energy_line("oops"),
            _energy_line("-110.0"),
            _energy_line("-90.0"),
        ]
        mean, sd = ComputeStats(lines)
        self.assertAlmostEqual(mean, -100.0)
        self.assertAlmostEqual(sd, 10.0)

    def test_sd_positive_for_distinct_values(self):
        _, sd = ComputeStats([_energy_line("1.0"), _energy_line("2.0")])
        self.assertGreater(sd, 0.0)

    def test_order_invariant(self):
        rng = random.Random(7)
        values = [rng.uniform(-500.0, 500.0) for _ in range(50)]
        lines = [_energy_line(f"{v:.6e}") for v in values]
        mean_a, sd_a = ComputeStats(lines)
        rng.shuffle(lines)
        mean_b, sd_b = ComputeStats(lines)
        self.assertAlmostEqual(mean_a, mean_b, places=9)
        self.assertAlmostEqual(sd_a, sd_b, places=9)


class TestRunningStats(unittest.TestCase):
    def test_push_updates_count(self):
        stats = RunningStats()
        for value in (1.0, 2.0, 3.0):
            stats.Push(value)
        self.assertEqual(stats.count, 3)
        self.assertAlmostEqual(stats.mean, 2.0)
        self.assertAlmostEqual(stats.sd, 1.0)

    def test_summary_carries_count(self):
        summary = Accumulate([_energy_line("5.0"), "junk"]).Summary()
        self.assertEqual(summary.n, 1)
        self.assertEqual(summary.mean, 5.0)
        self.assertEqual(summary.sd, 0.0)


# ---------------------------------------------------------------------------
# ΔE and formatting
# ---------------------------------------------------------------------------
class TestComputeDeltaE(unittest.TestCase):
    def test_difference(self):
        delta = ComputeDeltaE(-1000.0, -850.0, -100.0)
        self.assertTrue(math.isclose(delta, -1000.0 - (-100.0) - (-850.0), rel_tol=1e-10))

    def test_nan_propagates_from_each_operand(self):
        nan = float("nan")
        self.assertTrue(math.isnan(ComputeDeltaE(nan, 1.0, 1.0)))
        self.assertTrue(math.isnan(ComputeDeltaE(1.0, nan, 1.0)))
        self.assertTrue(math.isnan(ComputeDeltaE(1.0, 1.0, nan)))


class TestFormatValue(unittest.TestCase):
    def test_scientific_ten_digits(self):
        self.assertEqual(FormatValue(-120.0), "-1.2000000000e+02")

    def test_nan(self):
        self.assertEqual(FormatValue(float("nan")), "nan")

    def test_precision_preserved(self):
        value = 1234.56789012345
        self.assertTrue(math.isclose(float(FormatValue(value)), value, rel_tol=1e-10))


if __name__ == "__main__":
    unittest.main()
