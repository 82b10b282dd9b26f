from __future__ import annotations

import unittest

from netlist_mcp.errors import MalformedNumber
from netlist_mcp.units import format_value, is_number, parse_value, try_parse_value


class TestParseValue(unittest.TestCase):
    def test_suffix_table(self) -> None:
        self.assertAlmostEqual(parse_value("1.5u"), 1.5e-6, places=18)
        self.assertAlmostEqual(parse_value("0.36m"), 0.36e-3, places=15)
        self.assertEqual(parse_value("2Meg"), 2e6)
        self.assertEqual(parse_value("6"), 6.0)
        self.assertAlmostEqual(parse_value("2.2u"), 2.2e-6, places=18)
        self.assertAlmostEqual(parse_value("10p"), 10e-12, places=20)
        self.assertAlmostEqual(parse_value("3f"), 3e-15, places=22)
        self.assertEqual(parse_value("4.7k"), 4700.0)
        self.assertEqual(parse_value("1g"), 1e9)
        self.assertEqual(parse_value("1T"), 1e12)

    def test_meg_is_matched_before_milli(self) -> None:
        self.assertEqual(parse_value("1meg"), 1e6)
        self.assertEqual(parse_value("1MEG"), 1e6)
        self.assertAlmostEqual(parse_value("1M"), 1e-3, places=15)
        self.assertAlmostEqual(parse_value("1m"), 1e-3, places=15)

    def test_mil_and_trailing_unit_letters(self) -> None:
        self.assertAlmostEqual(parse_value("1mil"), 25.4e-6, places=15)
        self.assertAlmostEqual(parse_value("10uF"), 10e-6, places=15)
        self.assertEqual(parse_value("1kohm"), 1000.0)
        self.assertAlmostEqual(parse_value("100nH"), 100e-9, places=18)
        self.assertEqual(parse_value("5V"), 5.0)

    def test_scientific_and_signed_literals(self) -> None:
        self.assertAlmostEqual(parse_value("1e-6"), 1e-6, places=18)
        self.assertEqual(parse_value("-2.5"), -2.5)
        self.assertEqual(parse_value("+.5"), 0.5)
        self.assertEqual(parse_value("1E3"), 1000.0)

    def test_malformed_numbers(self) -> None:
        for token in ("", "abc", "1.2.3", "1x2", "k1", "--1"):
            with self.subTest(token=token):
                with self.assertRaises(MalformedNumber) as ctx:
                    parse_value(token)
                self.assertEqual(ctx.exception.code, "malformed_number")
        self.assertIsNone(try_parse_value("QMOD"))
        self.assertFalse(is_number("in"))
        self.assertTrue(is_number("100n"))


class TestFormatValue(unittest.TestCase):
    def test_plain_decimal(self) -> None:
        self.assertEqual(format_value(1000.0), "1000")
        self.assertEqual(format_value(0.0), "0")
        self.assertEqual(format_value(-5.0), "-5")
        self.assertEqual(format_value(0.25), "0.25")
        self.assertEqual(parse_value(format_value(1e-7)), 1e-7)

    def test_engineering_suffixes(self) -> None:
        self.assertEqual(format_value(1.5e-6, engineering=True), "1.5u")
        self.assertEqual(format_value(2e6, engineering=True), "2Meg")
        self.assertEqual(format_value(4700.0, engineering=True), "4.7k")
        self.assertEqual(format_value(100e-9, engineering=True), "100n")
        self.assertEqual(format_value(12.0, engineering=True), "12")
        self.assertEqual(format_value(0.0, engineering=True), "0")

    def test_engineering_output_parses_back(self) -> None:
        for value in (1.5e-6, 0.36e-3, 2e6, 33e-12, 4.7e3, 0.1):
            with self.subTest(value=value):
                text = format_value(value, engineering=True)
                self.assertAlmostEqual(parse_value(text) / value, 1.0, places=9)


if __name__ == "__main__":
    unittest.main()
