#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import anyio
from mcp.client.session import ClientSession
from mcp.client.stdio import StdioServerParameters, stdio_client


SMOKE_LIBRARY = """* MANUFACTURER: Smoke Audio
* TYPE: woofer
* FS: 38 Hz
.SUBCKT SMOKE_WOOFER plus minus
R1 plus n1 6.4
L1 n1 minus 0.7m
.ENDS SMOKE_WOOFER
"""


def _extract_call_result(payload: Any) -> Any:
    structured = getattr(payload, "structuredContent", None)
    if structured is not None:
        if isinstance(structured, dict) and "result" in structured:
            return structured["result"]
        return structured

    content = getattr(payload, "content", None) or []
    if not content:
        return None

    text = getattr(content[0], "text", None)
    if text is not None:
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return text
    return None


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise AssertionError(message)


async def _run_smoke_test(args: argparse.Namespace) -> None:
    workdir = Path(args.workdir).expanduser().resolve()
    workdir.mkdir(parents=True, exist_ok=True)
    library_root = workdir / "library"
    library_root.mkdir(parents=True, exist_ok=True)
    (library_root / "smoke.lib").write_text(SMOKE_LIBRARY, encoding="utf-8")

    library_args = ["--library-path", str(library_root)]
    for extra in args.library_path:
        library_args.extend(["--library-path", extra])

    server_params = StdioServerParameters(
        command=args.server_command,
        args=[
            "--transport",
            "stdio",
            "--workdir",
            str(workdir),
            *library_args,
        ],
        cwd=str(Path(args.server_cwd).expanduser().resolve()),
    )

    async with stdio_client(server_params) as (read_stream, write_stream):
        async with ClientSession(read_stream, write_stream) as session:
            init = await session.initialize()
            print(f"Connected to {init.serverInfo.name} {init.serverInfo.version}")

            tools_result = await session.list_tools()
            tool_names = {tool.name for tool in tools_result.tools}
            required_tools = {
                "getServiceStatus",
                "createCircuit",
                "addComponent",
                "importNetlist",
                "exportNetlist",
                "validateCircuit",
                "librarySearch",
                "getSubcircuitInfo",
                "reindexLibraries",
            }
            missing_tools = required_tools - tool_names
            _require(not missing_tools, f"Missing required tools: {sorted(missing_tools)}")
            print(f"Tool check passed ({len(tool_names)} tools)")

            status = _extract_call_result(await session.call_tool("getServiceStatus", {}))
            _require(isinstance(status, dict), "getServiceStatus did not return an object")
            _require(status.get("library_configured") is True, "Library not configured on the server")
            library = status.get("library") or {}
            _require(library.get("subcircuit_count", 0) >= 1, f"Library catalog is empty: {library}")
            print(f"Library check passed ({library['subcircuit_count']} subcircuits)")

            search = _extract_call_result(
                await session.call_tool("librarySearch", {"query": "smoke", "limit": 5})
            )
            _require(isinstance(search, dict), "librarySearch did not return an object")
            names = {item.get("name") for item in search.get("subcircuits", [])}
            _require("SMOKE_WOOFER" in names, f"SMOKE_WOOFER not found by librarySearch: {names}")
            print("Library search check passed")

            created = _extract_call_result(
                await session.call_tool("createCircuit", {"circuit_id": "smoke", "description": "Smoke test"})
            )
            _require(isinstance(created, dict), "createCircuit did not return an object")
            _require(created.get("circuit_id") == "smoke", "createCircuit returned wrong circuit_id")

            netlist = """
Speaker smoke test
V1 in 0 SIN(0 1 1k)
R1 in mid 1k
C1 mid 0 1u
X1 mid 0 SMOKE_WOOFER
Xbad mid 0 NOT_IN_LIBRARY
.tran 5m
.end
""".strip()
            report = _extract_call_result(
                await session.call_tool("importNetlist", {"netlist": netlist, "circuit_id": "smoke"})
            )
            _require(isinstance(report, dict), "importNetlist did not return an object")
            _require(report.get("status") == "PartialSuccess", f"Unexpected import status: {report}")
            _require(report.get("components_added") == 4, f"Expected 4 components added: {report}")
            failed = report.get("failed_components", [])
            _require(
                len(failed) == 1 and failed[0].get("name") == "Xbad",
                f"Expected Xbad to be the only failure: {failed}",
            )
            print("Import check passed (PartialSuccess with 1 explained failure)")

            exported = _extract_call_result(
                await session.call_tool(
                    "exportNetlist",
                    {"circuit_id": "smoke", "include_definitions": True, "write_file": True},
                )
            )
            _require(isinstance(exported, dict), "exportNetlist did not return an object")
            text = exported.get("netlist", "")
            _require("X1 mid 0 SMOKE_WOOFER" in text, "Subcircuit instance missing from export")
            _require(".SUBCKT SMOKE_WOOFER" in text, "Subcircuit definition missing from export")
            netlist_path = exported.get("netlist_path")
            _require(bool(netlist_path) and Path(netlist_path).exists(), "Exported netlist file not written")
            print(f"Export check passed ({netlist_path})")

            validation = _extract_call_result(
                await session.call_tool("validateCircuit", {"circuit_id": "smoke"})
            )
            _require(isinstance(validation, dict), "validateCircuit did not return an object")
            _require(validation.get("is_valid") is True, f"Circuit unexpectedly invalid: {validation}")
            print(f"Validation check passed ({validation.get('warning_count', 0)} warnings)")

            reindexed = _extract_call_result(await session.call_tool("reindexLibraries", {}))
            _require(isinstance(reindexed, dict), "reindexLibraries did not return an object")
            _require(reindexed.get("generation") == 2, f"Expected catalog generation 2: {reindexed}")
            print("Reindex check passed")

    print("MCP smoke test passed")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="End-to-end smoke test for netlist-mcp via MCP stdio transport"
    )
    parser.add_argument(
        "--server-command",
        default="netlist-mcp",
        help="Command used to launch the MCP server",
    )
    parser.add_argument(
        "--server-cwd",
        default=str(Path(__file__).resolve().parent),
        help="Working directory for launching the server",
    )
    parser.add_argument(
        "--workdir",
        default=str((Path(__file__).resolve().parent / ".tmp_smoke").resolve()),
        help="netlist-mcp workdir used during the smoke test",
    )
    parser.add_argument(
        "--library-path",
        action="append",
        default=[],
        help="Extra subcircuit library root passed to the server (repeatable)",
    )
    args = parser.parse_args()

    try:
        anyio.run(_run_smoke_test, args)
        return 0
    except Exception as exc:
        print(f"Smoke test failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
