from __future__ import annotations

import unittest

from netlist_mcp.models import ElementSpec, ModelSpec
from netlist_mcp.parser import parse_element_line, parse_model_statement, parse_netlist, reads_as_title


class TestParseNetlist(unittest.TestCase):
    def test_first_element_line_is_not_swallowed_as_title(self) -> None:
        parsed = parse_netlist("V1 in 0 DC 1\nXspk in 0 UNKNOWN_SUB\n.end\n")
        self.assertIsNone(parsed.title)
        self.assertEqual([spec.name for spec in parsed.elements], ["V1", "Xspk"])
        source, speaker = parsed.elements
        self.assertEqual(source.component_type, "voltage_source")
        self.assertEqual(source.value, 1.0)
        self.assertTrue(speaker.is_subcircuit)
        self.assertEqual(speaker.nodes, ["in", "0"])
        self.assertEqual(speaker.subcircuit_name, "UNKNOWN_SUB")
        self.assertEqual(parsed.errors, [])

    def test_title_and_comments(self) -> None:
        parsed = parse_netlist(
            "* leading comment\n"
            "Simple divider\n"
            "R1 in out 1k ; top leg\n"
            "* another comment\n"
            "R2 out 0 1k\n"
            ".end\n"
        )
        self.assertEqual(parsed.title, "Simple divider")
        self.assertEqual(parsed.warnings, [])
        self.assertEqual([spec.value for spec in parsed.elements], [1000.0, 1000.0])
        self.assertEqual(parsed.elements[0].line_number, 3)

    def test_title_that_starts_with_a_component_prefix_warns(self) -> None:
        parsed = parse_netlist("RC filter\nR1 in out 1k\nC1 out 0 100n\n.end\n")
        self.assertEqual(parsed.title, "RC filter")
        self.assertEqual(len(parsed.elements), 2)
        self.assertEqual(len(parsed.warnings), 1)
        self.assertIn("title", parsed.warnings[0])

    def test_broken_first_component_line_is_an_error(self) -> None:
        parsed = parse_netlist("R1 a 0 abc\nR2 a 0 1k\n.end\n")
        self.assertIsNone(parsed.title)
        self.assertEqual([spec.name for spec in parsed.elements], ["R2"])
        self.assertEqual(len(parsed.errors), 1)
        error = parsed.errors[0]
        self.assertEqual((error.name, error.line_number, error.kind), ("R1", 1, "component"))
        self.assertEqual(error.error.code, "malformed_number")
        self.assertEqual(parsed.warnings, [])

    def test_reads_as_title(self) -> None:
        self.assertTrue(reads_as_title("RC filter"))
        self.assertTrue(reads_as_title("Speaker crossover"))
        self.assertFalse(reads_as_title("Differential pair with mirror"))
        self.assertFalse(reads_as_title("R1 a 0 abc"))
        self.assertFalse(reads_as_title(".tran 1m"))
        self.assertFalse(reads_as_title("* comment"))
        self.assertFalse(reads_as_title(""))

    def test_unrecognized_line_is_isolated(self) -> None:
        parsed = parse_netlist("title\nR1 a b 1k\nZ1 a b foo\nC1 b 0 1u\n.end\n")
        self.assertEqual([spec.name for spec in parsed.elements], ["R1", "C1"])
        self.assertEqual(len(parsed.errors), 1)
        error = parsed.errors[0]
        self.assertEqual(error.name, "Z1")
        self.assertEqual(error.line_number, 3)
        self.assertEqual(error.error.code, "unrecognized_line")
        self.assertIn("line 3", error.error.message)

    def test_malformed_value_is_reported_per_line(self) -> None:
        parsed = parse_netlist("title\nR1 a b 1x2\nR2 a 0 2k\n")
        self.assertEqual(len(parsed.elements), 1)
        self.assertEqual(parsed.errors[0].error.code, "malformed_number")

    def test_continuation_lines_are_joined(self) -> None:
        parsed = parse_netlist("title\nR1 a b\n+ 1k\n.model DX D(Is=2.52n\n+ Rs=0.568 N=1.752)\n")
        self.assertEqual(parsed.elements[0].value, 1000.0)
        model = parsed.models[0]
        self.assertEqual(model.model_type, "diode")
        self.assertAlmostEqual(model.parameters["Is"], 2.52e-9, places=18)
        self.assertEqual(model.parameters["N"], 1.752)

    def test_end_and_stray_ends_terminate_the_stream(self) -> None:
        parsed = parse_netlist("title\nR1 a 0 1k\n.end\nR2 a 0 1k\n")
        self.assertEqual([spec.name for spec in parsed.elements], ["R1"])
        parsed = parse_netlist("title\nR1 a 0 1k\n.ENDS\nR2 a 0 1k\n")
        self.assertEqual([spec.name for spec in parsed.elements], ["R1"])

    def test_directives_are_kept_and_reported(self) -> None:
        parsed = parse_netlist("title\nR1 a 0 1k\n.tran 1m\n.TITLE Better title\n.end\n")
        self.assertEqual(parsed.directives, [".tran 1m"])
        self.assertEqual(parsed.title, "Better title")
        self.assertTrue(any(".tran" in item for item in parsed.warnings))

    def test_model_polarity_is_applied_to_transistors(self) -> None:
        parsed = parse_netlist(
            "amp\n"
            "Q1 c b e QP\n"
            "Q2 c b e sub QN\n"
            "M1 d g s s PM\n"
            "J1 d g s JN 2\n"
            ".model QP PNP(BF=100)\n"
            ".model QN NPN\n"
            ".model PM PMOS(VTO=-1)\n"
            ".model JN NJF\n"
        )
        by_name = {spec.name: spec for spec in parsed.elements}
        self.assertEqual(by_name["Q1"].component_type, "bjt_pnp")
        self.assertEqual(by_name["Q2"].component_type, "bjt_npn")
        self.assertEqual(by_name["Q2"].nodes, ["c", "b", "e", "sub"])
        self.assertEqual(by_name["M1"].component_type, "mosfet_p")
        self.assertEqual(by_name["J1"].parameters["area"], 2.0)
        self.assertEqual([model.model_type for model in parsed.models], ["bjt_pnp", "bjt_npn", "mosfet_p", "jfet_n"])

    def test_inline_subcircuit_block(self) -> None:
        parsed = parse_netlist(
            "divider test\n"
            ".subckt DIV in out gnd\n"
            "R1 in out 1k\n"
            "R2 out gnd 1k\n"
            ".ends DIV\n"
            "X1 a b 0 DIV\n"
            "V1 a 0 5\n"
            ".end\n"
        )
        self.assertIn("div", parsed.subcircuits)
        definition = parsed.subcircuits["div"]
        self.assertEqual(definition.formal_nodes, ("in", "out", "gnd"))
        self.assertIn("R2 out gnd 1k", definition.body)
        self.assertEqual([spec.name for spec in parsed.elements], ["X1", "V1"])

    def test_unterminated_subcircuit_is_an_error(self) -> None:
        parsed = parse_netlist("t\n.subckt OPEN a b\nR1 a b 1k\n")
        self.assertEqual(len(parsed.errors), 1)
        self.assertEqual(parsed.errors[0].kind, "subcircuit")


class TestParseElementLine(unittest.TestCase):
    def test_sources(self) -> None:
        spec = parse_element_line("V1 in 0 SIN(0 1 1k)")
        self.assertEqual(spec.parameters["waveform"], "sin")
        self.assertEqual(spec.parameters["amplitude"], 1.0)
        self.assertEqual(spec.parameters["frequency"], 1000.0)
        self.assertIsNone(spec.value)

        spec = parse_element_line("V2 a 0 DC 5 AC 1 90")
        self.assertEqual(spec.value, 5.0)
        self.assertEqual(spec.parameters["acmag"], 1.0)
        self.assertEqual(spec.parameters["acphase"], 90.0)

        spec = parse_element_line("I1 p 0 PULSE(0 5 0 1n 1n 5u 10u)")
        self.assertEqual(spec.component_type, "current_source")
        self.assertAlmostEqual(spec.parameters["per"], 10e-6, places=15)

        spec = parse_element_line("V4 q 0 PWL(0 0 1m 5)")
        self.assertEqual(spec.parameters["points"], [0.0, 0.0, 0.001, 5.0])

    def test_controlled_sources_need_gain(self) -> None:
        self.assertEqual(parse_element_line("E1 out 0 in 0 10").parameters["gain"], 10.0)
        self.assertAlmostEqual(parse_element_line("G1 out 0 in 0 gain = 2m").parameters["gain"], 2e-3, places=15)
        with self.assertRaises(ValueError) as ctx:
            parse_element_line("E2 out 0 in 0")
        self.assertEqual(ctx.exception.code, "missing_parameter")  # type: ignore[attr-defined]

    def test_subcircuit_instance_parameters_follow_the_name(self) -> None:
        spec = parse_element_line("X1 a b AMP gain=10 PARAMS: r=1k")
        self.assertEqual(spec.nodes, ["a", "b"])
        self.assertEqual(spec.model, "AMP")
        self.assertEqual(spec.parameters, {"gain": 10.0, "r": 1000.0})

    def test_missing_pieces(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            parse_element_line("R1 a b")
        self.assertEqual(ctx.exception.code, "missing_parameter")  # type: ignore[attr-defined]
        with self.assertRaises(ValueError) as ctx:
            parse_element_line("D1 a")
        self.assertEqual(ctx.exception.code, "node_count_mismatch")  # type: ignore[attr-defined]
        with self.assertRaises(ValueError) as ctx:
            parse_element_line("X1")
        self.assertEqual(ctx.exception.code, "unrecognized_line")  # type: ignore[attr-defined]


class TestParseModelStatement(unittest.TestCase):
    def test_non_numeric_parameters_are_dropped_with_warning(self) -> None:
        model, warnings = parse_model_statement(".MODEL 2N3904 NPN(IS=6.734f BF=416.4 mfg=Vendor)")
        self.assertIsInstance(model, ModelSpec)
        self.assertEqual(model.model_type, "bjt_npn")
        self.assertEqual(set(model.parameters), {"IS", "BF"})
        self.assertEqual(len(warnings), 1)

    def test_items_keep_source_order(self) -> None:
        parsed = parse_netlist("t\nR1 a 0 1\n.model DX D\nD1 a 0 DX\n")
        kinds = [type(item) for item in parsed.items]
        self.assertEqual(kinds, [ElementSpec, ModelSpec, ElementSpec])


if __name__ == "__main__":
    unittest.main()
