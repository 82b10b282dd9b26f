from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from netlist_mcp import server
from netlist_mcp.errors import ComponentNotFound, InvalidParameter, LibraryUnavailable, SubcircuitNotFound


SPEAKER_LIB = """* MANUFACTURER: Acme Audio
* TYPE: woofer
* PART_NUMBER: AW-8
* FS: 42
.SUBCKT SPK_A plus minus
R1 plus n1 6.2
L1 n1 minus 0.5m
.ENDS SPK_A
"""


def _library_root(prefix: str) -> Path:
    root = Path(tempfile.mkdtemp(prefix=prefix))
    (root / "speakers.lib").write_text(SPEAKER_LIB, encoding="utf-8")
    for index in range(5):
        (root / f"tweeter_{index}.lib").write_text(
            f"* TYPE: tweeter\n.SUBCKT TW_{index} plus minus\nR1 plus minus 4\n.ENDS\n",
            encoding="utf-8",
        )
    return root


class TestServerState(unittest.TestCase):
    def setUp(self) -> None:
        self.workdir = Path(tempfile.mkdtemp(prefix="netlist_server_state_test_"))
        self.library = _library_root("netlist_server_library_")
        server._configure_server(workdir=self.workdir, library_paths=[self.library], export_comments=False)

    def tearDown(self) -> None:
        server._configure_server(workdir=self.workdir, library_paths=None)

    def test_status_reports_library(self) -> None:
        status = server.getServiceStatus()
        self.assertTrue(status["library_configured"])
        self.assertEqual(status["library"]["subcircuit_count"], 6)
        self.assertEqual(status["circuits"], 0)
        self.assertIn("resistor", status["supported_component_types"])

    def test_library_is_indexed_on_first_use(self) -> None:
        self.assertIsNone(server._catalog)
        self.assertIsNone(server._assembler)
        server.getServiceStatus()
        self.assertIsNotNone(server._catalog)
        self.assertEqual(server._catalog.generation, 1)

    def test_import_reports_partial_success(self) -> None:
        created = server.createCircuit("speaker", description="Speaker test")
        self.assertTrue(created["active"])
        report = server.importNetlist("V1 in 0 DC 1\nXspk in 0 UNKNOWN_SUB\n.end\n")
        self.assertEqual(report["circuit_id"], "speaker")
        self.assertEqual(report["status"], "PartialSuccess")
        self.assertEqual(report["components_added"], 1)
        self.assertEqual(report["failed_components"][0]["name"], "Xspk")
        self.assertIn("not found", report["failed_components"][0]["reason"])

    def test_import_creates_missing_circuits(self) -> None:
        report = server.importNetlist("pair\nV1 a 0 1\nX1 a 0 spk_a\n", circuit_id="fresh")
        self.assertEqual(report["status"], "Success")
        self.assertEqual(server.listCircuits()["active_circuit_id"], "fresh")
        info = server.getComponentInfo("x1", circuit_id="fresh")
        self.assertEqual(info["component"]["subcircuit"], "SPK_A")
        self.assertEqual(info["subcircuit"]["nodes"], ["plus", "minus"])
        with self.assertRaises(ComponentNotFound):
            server.getComponentInfo("X9", circuit_id="fresh")

    def test_add_component_and_export_to_file(self) -> None:
        server.createCircuit("rc")
        server.addComponent("V1", "voltage_source", ["in", "0"], value="5")
        server.addComponent("R1", "resistor", ["in", "out"], value="1k")
        added = server.addComponent("C1", "capacitor", ["out", "0"], value=1e-7, parameters={"ic": 0})
        self.assertEqual(added["component_count"], 3)
        server.addComponent("X1", "subcircuit", ["out", "0"], model="SPK_A")

        exported = server.exportNetlist(write_file=True, engineering_units=True)
        self.assertNotIn("* Circuit:", exported["netlist"])
        self.assertIn("R1 in out 1k", exported["netlist"])
        self.assertIn("X1 out 0 SPK_A", exported["netlist"])
        path = Path(exported["netlist_path"])
        self.assertTrue(path.exists())
        self.assertEqual(path.parent, self.workdir / "netlists")
        self.assertEqual(path.read_text(encoding="utf-8"), exported["netlist"])

        with_defs = server.exportNetlist(include_definitions=True, include_comments=True)
        self.assertIn(".SUBCKT SPK_A plus minus", with_defs["netlist"])
        self.assertIn("* Circuit: rc", with_defs["netlist"])

        removed = server.removeComponent("X1")
        self.assertEqual(removed["component_count"], 3)
        self.assertTrue(server.validateCircuit()["is_valid"])

    def test_add_unknown_subcircuit_raises_with_corrective_action(self) -> None:
        server.createCircuit()
        with self.assertRaises(SubcircuitNotFound) as ctx:
            server.addComponent("X1", "subcircuit", ["a", "0"], model="NOPE")
        self.assertIn("librarySearch", str(ctx.exception))

    def test_add_component_rejects_scalar_pwl_points(self) -> None:
        server.createCircuit()
        with self.assertRaises(InvalidParameter):
            server.addComponent("V1", "voltage_source", ["a", "0"], parameters={"waveform": "pwl", "points": 5})
        with self.assertRaises(ComponentNotFound):
            server.getComponentInfo("V1")

    def test_define_model_rejects_unknown_type(self) -> None:
        server.createCircuit()
        result = server.defineModel("QP", "pnp", {"BF": "100"})
        self.assertEqual(result["model"]["model_type"], "bjt_pnp")
        with self.assertRaises(ValueError):
            server.defineModel("X", "capacitor", {})

    def test_library_search(self) -> None:
        result = server.librarySearch("acme")
        self.assertEqual(result["count"], 1)
        self.assertEqual(result["subcircuits"][0]["name"], "SPK_A")
        self.assertEqual(result["subcircuits"][0]["manufacturer"], "Acme Audio")
        self.assertNotIn("metadata", result["subcircuits"][0])

        detailed = server.librarySearch("spk", include_parameters=True)
        self.assertEqual(detailed["subcircuits"][0]["derived_parameters"], {"FS": 42.0})

        clamped = server.librarySearch("", limit=0)
        self.assertEqual(clamped["limit"], 1)
        self.assertEqual(clamped["returned_count"], 1)
        self.assertEqual(clamped["count"], 6)

        counted = server.librarySearch("", subcircuit_type="tweeter", count_only=True)
        self.assertEqual(counted["count"], 5)
        self.assertNotIn("subcircuits", counted)

    def test_subcircuit_info_and_reindex(self) -> None:
        info = server.getSubcircuitInfo("spk_a")
        self.assertEqual(info["generation"], 1)
        self.assertIn("L1 n1 minus 0.5m", info["body"])
        with self.assertRaises(SubcircuitNotFound):
            server.getSubcircuitInfo("MID_5")

        (self.library / "mid.lib").write_text(".SUBCKT MID_5 p m\nR1 p m 5\n.ENDS\n", encoding="utf-8")
        status = server.reindexLibraries()
        self.assertEqual(status["generation"], 2)
        self.assertEqual(status["subcircuit_count"], 7)
        self.assertEqual(server.getSubcircuitInfo("MID_5")["name"], "MID_5")


class TestServerWithoutLibrary(unittest.TestCase):
    def setUp(self) -> None:
        self.workdir = Path(tempfile.mkdtemp(prefix="netlist_server_nolib_test_"))
        server._configure_server(workdir=self.workdir, library_paths=None)

    def test_library_tools_explain_missing_configuration(self) -> None:
        result = server.librarySearch("anything")
        self.assertFalse(result["library_configured"])
        self.assertEqual(result["subcircuits"], [])
        self.assertIn("--library-path", result["message"])
        with self.assertRaises(LibraryUnavailable):
            server.getSubcircuitInfo("SPK_A")
        self.assertFalse(server.reindexLibraries()["reindexed"])

    def test_import_without_library_is_not_not_found(self) -> None:
        report = server.importNetlist("V1 in 0 DC 1\nXspk in 0 UNKNOWN_SUB\n.end\n")
        self.assertEqual(report["failed_components"][0]["code"], "library_unavailable")

    def test_reindex_with_paths_enables_the_library(self) -> None:
        server.createCircuit("late")
        with self.assertRaises(LibraryUnavailable):
            server.addComponent("X1", "subcircuit", ["a", "0"], model="SPK_A")
        library = _library_root("netlist_server_late_library_")
        status = server.reindexLibraries([str(library)])
        self.assertTrue(status["library_configured"])
        self.assertEqual(status["generation"], 1)
        added = server.addComponent("X1", "subcircuit", ["a", "0"], model="SPK_A")
        self.assertEqual(added["component"]["subcircuit"], "SPK_A")

    def test_circuit_lifecycle(self) -> None:
        with self.assertRaises(ValueError):
            server.exportNetlist()
        server.createCircuit("a")
        server.createCircuit("b")
        listed = server.listCircuits()
        self.assertEqual([item["circuit_id"] for item in listed["circuits"]], ["a", "b"])
        self.assertTrue(listed["circuits"][0]["active"])
        deleted = server.deleteCircuit("a")
        self.assertEqual(deleted["active_circuit_id"], "b")


if __name__ == "__main__":
    unittest.main()
