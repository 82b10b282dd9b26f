from __future__ import annotations

import unittest

from pydantic import ValidationError

from netlist_mcp import server


TOOL_NAMES = (
    "getServiceStatus",
    "createCircuit",
    "listCircuits",
    "deleteCircuit",
    "addComponent",
    "defineModel",
    "removeComponent",
    "getComponentInfo",
    "importNetlist",
    "exportNetlist",
    "validateCircuit",
    "librarySearch",
    "getSubcircuitInfo",
    "reindexLibraries",
)


def _tool(name: str):
    tool = server.mcp._tool_manager.get_tool(name)  # type: ignore[attr-defined]
    assert tool is not None, name
    return tool


class TestToolContracts(unittest.TestCase):
    def test_all_tools_are_registered(self) -> None:
        for name in TOOL_NAMES:
            tool = server.mcp._tool_manager.get_tool(name)  # type: ignore[attr-defined]
            self.assertIsNotNone(tool, name)
            self.assertTrue(tool.description, name)

    def test_add_component_schema(self) -> None:
        schema = _tool("addComponent").parameters
        self.assertEqual(set(schema.get("required", [])), {"name", "component_type", "nodes"})
        props = schema.get("properties", {})
        self.assertEqual(props["nodes"]["type"], "array")
        self.assertIn("circuit_id", props)

    def test_import_netlist_requires_text(self) -> None:
        tool = _tool("importNetlist")
        self.assertEqual(tool.parameters.get("required"), ["netlist"])
        with self.assertRaises(ValidationError):
            tool.fn_metadata.arg_model.model_validate({"circuit_id": "c1"})

    def test_add_component_rejects_bad_argument_types(self) -> None:
        arg_model = _tool("addComponent").fn_metadata.arg_model
        with self.assertRaises(ValidationError):
            arg_model.model_validate({"name": "R1", "component_type": "resistor"})
        with self.assertRaises(ValidationError):
            arg_model.model_validate({"name": "R1", "component_type": "resistor", "nodes": 5})
        parsed = arg_model.model_validate(
            {"name": "R1", "component_type": "resistor", "nodes": ["a", "b"], "value": "1k"}
        )
        self.assertEqual(parsed.nodes, ["a", "b"])

    def test_library_search_defaults(self) -> None:
        props = _tool("librarySearch").parameters.get("properties", {})
        self.assertEqual(props["limit"]["default"], 20)
        self.assertFalse(props["count_only"]["default"])
        self.assertNotIn("required", _tool("librarySearch").parameters)


if __name__ == "__main__":
    unittest.main()
