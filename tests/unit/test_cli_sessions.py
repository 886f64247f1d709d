import asyncio
import json
import uuid

from typer.testing import CliRunner

import adscout.persistence as persistence
from adscout.cli import app
from adscout.persistence import ExecutionLogEntry, InMemorySessionRepository


def _setup_repo() -> InMemorySessionRepository:
    repo = InMemorySessionRepository()
    persistence._repository_instance = repo
    return repo


def test_session_list_shows_sessions():
    repo = _setup_repo()
    first = str(uuid.uuid4())
    second = str(uuid.uuid4())
    asyncio.run(repo.create_session(first, "user-1"))
    asyncio.run(repo.mark_session_completed(first))
    asyncio.run(repo.create_session(second, "user-2"))
    asyncio.run(repo.update_progress(second, "meta_ads_extraction", 30))

    runner = CliRunner()
    result = runner.invoke(app, ["session", "list"])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert first in result.stdout
    assert second in result.stdout
    assert "completed" in result.stdout
    assert "meta_ads_extraction" in result.stdout

    filtered = runner.invoke(app, ["session", "list", "--user-id", "user-2"])
    assert second in filtered.stdout
    assert first not in filtered.stdout


def test_session_list_empty():
    _setup_repo()
    result = CliRunner().invoke(app, ["session", "list"])
    assert result.exit_code == 0
    assert "No sessions found" in result.stdout


def test_session_show_details_and_missing():
    repo = _setup_repo()
    session_id = str(uuid.uuid4())
    asyncio.run(repo.create_session(session_id, "user-1"))
    asyncio.run(
        repo.append_log(
            ExecutionLogEntry(
                session_id=session_id,
                step_name="Deep Research",
                tool_name="firecrawl",
                status="completed",
                duration_ms=812,
                progress_percent=25,
                sub_step="Found 3 competitors",
            )
        )
    )
    asyncio.run(repo.mark_session_failed(session_id, "store down"))

    runner = CliRunner()
    result = runner.invoke(app, ["session", "show", session_id])
    assert result.exit_code == 0, f"Command failed. Output: {result.stdout}"
    assert session_id in result.stdout
    assert "failed" in result.stdout
    assert "store down" in result.stdout
    assert "[completed] Deep Research (firecrawl) 25% 812ms Found 3 competitors" in result.stdout

    logs = runner.invoke(app, ["session", "logs", session_id])
    assert logs.exit_code == 0
    assert "Deep Research" in logs.stdout

    missing = runner.invoke(app, ["session", "show", "missing-id"])
    assert missing.exit_code == 1
    assert "Session not found" in missing.stdout


def test_run_requires_functions_url(tmp_path, monkeypatch):
    _setup_repo()
    monkeypatch.delenv("ADSCOUT_FUNCTIONS_URL", raising=False)
    monkeypatch.setenv("ADSCOUT_CONFIG", str(tmp_path / "missing.yaml"))
    input_path = tmp_path / "input.json"
    input_path.write_text(
        json.dumps({"brandName": "Glow", "competitorQuery": "vegan", "userId": "u1"})
    )

    result = CliRunner().invoke(app, ["run", str(input_path)])
    assert result.exit_code == 1
    assert "base_url" in result.stdout


def test_run_rejects_missing_file(tmp_path):
    result = CliRunner().invoke(app, ["run", str(tmp_path / "nope.json")])
    assert result.exit_code == 1
    assert "does not exist" in result.stdout
