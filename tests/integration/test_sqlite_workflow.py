import pytest

from adscout.orchestrator import WorkflowOrchestrator
from adscout.persistence import LogStatus, SessionState, SQLiteSessionRepository


@pytest.mark.asyncio
async def test_workflow_persists_to_sqlite(tmp_path, fake_tools, workflow_input):
    db_path = tmp_path / "adscout.db"
    repo = SQLiteSessionRepository(db_path)

    result = await WorkflowOrchestrator(repo, fake_tools).run(workflow_input)
    assert result.success is True

    reopened = SQLiteSessionRepository(db_path)
    session = await reopened.get_session(result.session_id)
    assert session.state == SessionState.COMPLETED
    assert session.progress == 100
    assert session.metadata["videosAnalyzed"] == 1
    assert session.metadata["artifact"]["synthesis"]["executiveSummary"] == (
        "Rivals lean on UGC testimonials."
    )

    logs = await reopened.list_logs(result.session_id)
    assert logs[0].step_name == "Workflow"
    assert logs[-1].step_name == "Workflow"
    started = [e.step_name for e in logs if e.status == LogStatus.STARTED]
    terminal = [e.step_name for e in logs if e.status.is_terminal]
    # Every step, the run itself included, has one started and one terminal entry.
    assert sorted(started) == sorted(terminal)
