"""
Tests for the switchboard command line.
"""

import json

import pytest

from switchboard.cli import build_parser, main


def _run(capsys, argv):
    code = main(argv)
    return code, capsys.readouterr().out


class TestParser:
    def test_ask_defaults(self):
        args = build_parser().parse_args(["ask", "hello"])
        assert args.mode == "auto"
        assert args.model is None
        assert args.db is None

    def test_repeatable_model(self):
        args = build_parser().parse_args(["ask", "hi", "--mode", "compare", "--model", "a", "--model", "b"])
        assert args.model == ["a", "b"]

    def test_rejects_unknown_mode(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["ask", "hi", "--mode", "sometimes"])


class TestCommands:
    def test_ask_in_memory(self, capsys):
        code, out = _run(capsys, ["ask", "Why is the sky blue?", "--quality-bias", "0"])
        summary = json.loads(out)
        assert code == 0
        assert summary["status"] == "DONE"
        assert summary["mode"] == "AUTO"
        assert summary["routed_to"] == {"provider": "mock", "model_id": "mock-balanced"}
        assert [s["node_id"] for s in summary["steps"]] == ["router", "auto_model", "merge"]
        assert summary["final_answer"]

    def test_ask_then_show_and_memory(self, capsys, tmp_path):
        db = str(tmp_path / "runs.duckdb")
        code, out = _run(capsys, ["ask", "Compare two designs", "--mode", "compare", "--db", db])
        assert code == 0
        asked = json.loads(out)

        code, out = _run(capsys, ["show", asked["run_id"], "--db", db])
        assert code == 0
        shown = json.loads(out)
        assert shown["run_id"] == asked["run_id"]
        assert shown["final_answer"] == asked["final_answer"]
        assert len(shown["steps"]) == 6

        code, out = _run(
            capsys,
            ["memory", "add", "--session", asked["session_id"], "--key", "db", "--value", '{"engine": "duckdb"}', "--db", db],
        )
        assert code == 0
        assert json.loads(out)["value"] == {"engine": "duckdb"}

        code, out = _run(capsys, ["memory", "list", "--session", asked["session_id"], "--db", db])
        keys = [item["key"] for item in json.loads(out)]
        # the completed run already stored its summary memory item
        assert keys[0] == "db"
        assert f"run-{asked['run_id']}-summary" in keys

    def test_unknown_run(self, capsys):
        code, out = _run(capsys, ["show", "run-missing"])
        assert code == 1
        assert out == ""

    def test_invalid_memory_json(self, capsys, tmp_path):
        db = str(tmp_path / "runs.duckdb")
        code, out = _run(capsys, ["ask", "hello", "--db", db])
        session_id = json.loads(out)["session_id"]
        code, _ = _run(capsys, ["memory", "add", "--session", session_id, "--key", "k", "--value", "{oops", "--db", db])
        assert code == 2
