import io
import json

import pytest

from codex_bridge import cli
from codex_bridge.change_mode.formatter import format_edit
from codex_bridge.errors import ExecutionError
from tests.common.edit_blocks import numbered_edits


@pytest.fixture(autouse=True)
def _no_logging_setup(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda verbose=False: None)


def test_changes_command_pages_saved_output(tmp_path, capsys):
    source = tmp_path / "codex.txt"
    source.write_text("\n\n".join(format_edit(edit) for edit in numbered_edits(9)), encoding="utf-8")

    exit_code = cli.main(["changes", "--max-chunk-chars", "600", "--chunk-index", "2", str(source)])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Chunk 2 of 3." in out
    assert "The cache key is unavailable" in out


def test_changes_command_reads_stdin(monkeypatch, capsys):
    edits = numbered_edits(1)
    monkeypatch.setattr("sys.stdin", io.StringIO(format_edit(edits[0])))

    exit_code = cli.main(["changes"])

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == format_edit(edits[0])


def test_missing_source_file_reports_io_error(tmp_path, capsys):
    exit_code = cli.main(["changes", str(tmp_path / "missing.txt")])

    payload = json.loads(capsys.readouterr().err)
    assert exit_code == 2
    assert payload["error"]["code"] == "IO_ERROR"


def test_ask_command_builds_request(monkeypatch, capsys):
    captured = {}

    async def fake_ask(request, on_progress=None):
        captured["request"] = request
        captured["on_progress"] = on_progress
        return "Codex response:\nhi"

    monkeypatch.setattr(cli, "ask_codex", fake_ask)

    exit_code = cli.main(["ask", "--model", "o4", "--full-auto", "--max-attempts", "2", "--verbose", "say", "hi"])

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == "Codex response:\nhi"
    request = captured["request"]
    assert request.prompt == "say hi"
    assert request.model == "o4"
    assert request.full_auto is True
    assert request.max_attempts == 2
    assert captured["on_progress"] is not None


def test_ask_command_reports_bridge_errors_as_json(monkeypatch, capsys):
    async def fake_ask(request, on_progress=None):
        raise ExecutionError("Codex CLI timed out after 10ms", timed_out=True)

    monkeypatch.setattr(cli, "ask_codex", fake_ask)

    exit_code = cli.main(["ask", "slow", "prompt"])

    payload = json.loads(capsys.readouterr().err)
    assert exit_code == 2
    assert payload == {"ok": False, "error": {"code": "TIMEOUT", "message": "Codex CLI timed out after 10ms"}}


def test_ask_command_rejects_conflicting_flags_before_running(capsys):
    exit_code = cli.main(["ask", "--yolo", "--sandbox-mode", "read-only", "do", "it"])

    payload = json.loads(capsys.readouterr().err)
    assert exit_code == 2
    assert payload["error"]["code"] == "CONFIG_ERROR"


def test_ping_command_echoes(capsys):
    assert cli.main(["ping", "hello", "world"]) == 0
    assert capsys.readouterr().out.strip() == "hello world"


def test_version_command_prints_system_information(monkeypatch, capsys):
    async def fake_version():
        return "**System Information:**"

    monkeypatch.setattr(cli, "version_info", fake_version)

    assert cli.main(["version"]) == 0
    assert capsys.readouterr().out.strip() == "**System Information:**"


def test_brainstorm_command_builds_request(monkeypatch, capsys):
    captured = {}

    async def fake_brainstorm(request, on_progress=None):
        captured["request"] = request
        return "### Idea 1: Cache"

    monkeypatch.setattr(cli, "brainstorm", fake_brainstorm)

    exit_code = cli.main(
        ["brainstorm", "--methodology", "scamper", "--idea-count", "4", "--no-analysis", "faster", "builds"]
    )

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == "### Idea 1: Cache"
    request = captured["request"]
    assert request.prompt == "faster builds"
    assert request.methodology.value == "scamper"
    assert request.idea_count == 4
    assert request.include_analysis is False


def test_brainstorm_command_rejects_zero_ideas(capsys):
    exit_code = cli.main(["brainstorm", "--idea-count", "0", "anything"])

    payload = json.loads(capsys.readouterr().err)
    assert exit_code == 2
    assert payload["error"]["code"] == "INVALID_REQUEST"
