"""Unit tests for TailWorker and WorkerSupervisor."""
import queue
import threading

import pytest
from kubernetes.client.rest import ApiException

from davit.models import Generation
from davit.tailer import TailWorker, WorkerSupervisor
from tests.fakes import FakeClusterClient, FakeStream


def drain(records: queue.Queue):
    items = []
    while not records.empty():
        items.append(records.get_nowait())
    return items


def run_worker(client, pod_name="api-1", generation=Generation.NEW, stop_event=None, **kwargs):
    records = queue.Queue()
    worker = TailWorker(
        client,
        pod_name,
        generation,
        "web",
        records,
        stop_event or threading.Event(),
        **kwargs,
    )
    worker.start()
    worker.join(5)
    assert not worker.is_alive()
    return drain(records)


@pytest.mark.unit
class TestTailWorker:
    """Test TailWorker thread."""

    def test_lines_become_records(self):
        client = FakeClusterClient(streams={"api-1": FakeStream(["plain", '{"level":"warn","msg":"careful"}'])})
        records = run_worker(client)
        assert [r.message for r in records] == ["plain", "careful"]
        assert records[1].severity == "WARN"
        assert all(r.source_pod == "api-1" for r in records)
        assert all(r.generation is Generation.NEW for r in records)

    def test_requests_follow_stream_with_tail_window(self):
        client = FakeClusterClient()
        run_worker(client, container="app", tail_lines=10)
        assert client.stream_calls == [
            {"pod": "api-1", "namespace": "web", "container": "app", "tail_lines": 10}
        ]

    def test_open_error_emits_one_error_record(self):
        client = FakeClusterClient(streams={"api-1": ApiException(status=404, reason="Not Found")})
        records = run_worker(client, generation=Generation.OLD)
        assert len(records) == 1
        assert records[0].severity == "ERROR"
        assert records[0].message == "Error streaming logs: 404 Not Found"
        assert records[0].generation is Generation.OLD
        assert len(client.stream_calls) == 1

    def test_read_error_after_lines(self):
        client = FakeClusterClient(streams={"api-1": FakeStream(["one", "two"], error=OSError("connection reset"))})
        records = run_worker(client)
        assert [r.message for r in records] == ["one", "two", "Error streaming logs: connection reset"]
        assert records[-1].severity == "ERROR"

    def test_stream_end_emits_nothing_more(self):
        stream = FakeStream(["only"])
        records = run_worker(FakeClusterClient(streams={"api-1": stream}))
        assert [r.message for r in records] == ["only"]
        assert stream.closed.is_set()

    def test_stopped_before_open_emits_nothing(self):
        stop = threading.Event()
        stop.set()
        stream = FakeStream(["ignored"])
        records = run_worker(FakeClusterClient(streams={"api-1": stream}), stop_event=stop)
        assert records == []
        assert stream.closed.is_set()


@pytest.mark.unit
class TestWorkerSupervisor:
    """Test WorkerSupervisor class."""

    def test_spawn_starts_worker(self):
        records = queue.Queue()
        client = FakeClusterClient(streams={"api-1": FakeStream(["hello"])})
        supervisor = WorkerSupervisor(client, "web", records)
        worker = supervisor.spawn("api-1", Generation.NEW)
        worker.join(5)
        assert supervisor.workers == {"api-1": worker}
        assert [r.message for r in drain(records)] == ["hello"]

    def test_shutdown_stops_quiet_streams(self):
        records = queue.Queue()
        stream = FakeStream(["first"], block=True)
        supervisor = WorkerSupervisor(FakeClusterClient(streams={"api-1": stream}), "web", records)
        worker = supervisor.spawn("api-1", Generation.NEW)
        supervisor.shutdown(timeout=5)
        assert supervisor.stop_event.is_set()
        assert stream.closed.is_set()
        assert not worker.is_alive()
        assert supervisor.active() == []

    def test_spawn_after_shutdown_is_refused(self):
        supervisor = WorkerSupervisor(FakeClusterClient(), "web", queue.Queue())
        supervisor.shutdown()
        with pytest.raises(RuntimeError):
            supervisor.spawn("api-1", Generation.NEW)
