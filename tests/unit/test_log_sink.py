import pytest

from adscout.logsink import ExecutionLogSink
from adscout.persistence import ExecutionLogEntry, InMemorySessionRepository


class FlakyRepository(InMemorySessionRepository):
    """Fails every write for step names listed in ``broken``."""

    def __init__(self, broken):
        super().__init__()
        self.broken = set(broken)

    async def append_log(self, entry):
        if entry.step_name in self.broken:
            raise RuntimeError("log table unavailable")
        return await super().append_log(entry)


def _entry(step_name, status="started"):
    return ExecutionLogEntry(session_id="s1", step_name=step_name, status=status)


@pytest.mark.asyncio
async def test_sink_writes_entries_in_order():
    repo = InMemorySessionRepository()
    await repo.create_session("s1", "user-1")

    async with ExecutionLogSink(repo) as sink:
        for i in range(20):
            sink.append(_entry(f"step-{i}"))

    logs = await repo.list_logs("s1")
    assert [e.step_name for e in logs] == [f"step-{i}" for i in range(20)]


@pytest.mark.asyncio
async def test_sink_swallows_write_failures():
    repo = FlakyRepository(broken={"bad"})
    await repo.create_session("s1", "user-1")

    sink = ExecutionLogSink(repo)
    await sink.start()
    sink.append(_entry("good-1"))
    sink.append(_entry("bad"))
    sink.append(_entry("good-2", "completed"))
    await sink.flush()
    assert sink.running
    await sink.close()

    assert sink.failed_writes == 1
    logs = await repo.list_logs("s1")
    assert [e.step_name for e in logs] == ["good-1", "good-2"]


@pytest.mark.asyncio
async def test_append_requires_started_sink():
    sink = ExecutionLogSink(InMemorySessionRepository())
    with pytest.raises(RuntimeError):
        sink.append(_entry("early"))


@pytest.mark.asyncio
async def test_close_is_safe_without_start():
    sink = ExecutionLogSink(InMemorySessionRepository())
    await sink.close()
    assert not sink.running
