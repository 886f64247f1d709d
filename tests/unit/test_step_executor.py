import asyncio

import pytest

from adscout.errors import CollaboratorError, StepFailedError
from adscout.logsink import ExecutionLogSink
from adscout.persistence import InMemorySessionRepository, LogStatus
from adscout.steps import StepExecutor, default_summary


async def _setup():
    repo = InMemorySessionRepository()
    await repo.create_session("s1", "user-1")
    sink = ExecutionLogSink(repo)
    await sink.start()
    return repo, sink, StepExecutor("s1", sink)


@pytest.mark.asyncio
async def test_execute_success_writes_started_and_completed():
    repo, sink, executor = await _setup()

    async def operation():
        return ["a", "b"]

    result = await executor.execute(
        "Meta Ads Extraction",
        "meta-ads",
        operation,
        progress=30,
        completed_progress=45,
        input_summary={"urls": 1},
        describe=lambda ads: f"Extracted {len(ads)} ads",
    )
    await sink.close()

    assert result == ["a", "b"]
    logs = await repo.list_logs("s1")
    assert [e.status for e in logs] == [LogStatus.STARTED, LogStatus.COMPLETED]
    started, completed = logs
    assert started.progress_percent == 30
    assert started.input_data == {"urls": 1}
    assert started.tool_icon == "📱"
    assert completed.progress_percent == 45
    assert completed.output_data == {"count": 2}
    assert completed.sub_step == "Extracted 2 ads"
    assert completed.duration_ms >= 0


@pytest.mark.asyncio
async def test_execute_failure_writes_failed_and_raises():
    repo, sink, executor = await _setup()

    async def operation():
        raise CollaboratorError("mcp-firecrawl-tool", "HTTP 503: unavailable")

    with pytest.raises(StepFailedError) as excinfo:
        await executor.execute("Deep Research", "firecrawl", operation, progress=10)
    await sink.close()

    assert excinfo.value.step_name == "Deep Research"
    assert isinstance(excinfo.value.cause, CollaboratorError)
    logs = await repo.list_logs("s1")
    assert [e.status for e in logs] == [LogStatus.STARTED, LogStatus.FAILED]
    assert logs[1].error_message == "mcp-firecrawl-tool: HTTP 503: unavailable"
    assert logs[1].duration_ms is not None


@pytest.mark.asyncio
async def test_execute_timeout_is_a_failure():
    repo, sink, executor = await _setup()

    async def operation():
        await asyncio.sleep(5)

    with pytest.raises(StepFailedError):
        await executor.execute(
            "Video Analysis", "azure", operation, progress=65, timeout=0.01
        )
    await sink.close()

    logs = await repo.list_logs("s1")
    assert logs[-1].status == LogStatus.FAILED
    assert logs[-1].error_message == "Timed out after 0.01s"


@pytest.mark.asyncio
async def test_complete_without_work_and_skip():
    repo, sink, executor = await _setup()

    executor.complete_without_work(
        "Video Download", "download", progress=50, completed_progress=60, reason="No video ads found"
    )
    executor.skip("Video Analysis", "azure", progress=65, reason="Disabled")
    await sink.close()

    logs = await repo.list_logs("s1")
    assert [e.status for e in logs] == [
        LogStatus.STARTED,
        LogStatus.COMPLETED,
        LogStatus.SKIPPED,
    ]
    assert logs[1].output_data == {
        "skipped": True,
        "processed": 0,
        "message": "No video ads found",
    }
    assert logs[1].progress_percent == 60
    assert logs[2].sub_step == "Disabled"
    assert logs[2].duration_ms == 0


def test_default_summary():
    assert default_summary([1, 2, 3]) == {"count": 3}
    assert default_summary("text") == {"has_result": True}
    assert default_summary(None) == {"has_result": False}


@pytest.mark.asyncio
async def test_broken_summary_still_completes_step():
    repo, sink, executor = await _setup()

    async def operation():
        return ["ad"]

    def summarize(payload):
        raise KeyError("adsExtracted")

    def describe(payload):
        raise TypeError("bad note")

    result = await executor.execute(
        "Meta Ads Extraction",
        "meta-ads",
        operation,
        progress=30,
        summarize=summarize,
        describe=describe,
    )
    await sink.close()

    assert result == ["ad"]
    logs = await repo.list_logs("s1")
    assert [e.status for e in logs] == [LogStatus.STARTED, LogStatus.COMPLETED]
    assert logs[1].output_data == {"count": 1}
    assert logs[1].sub_step is None
