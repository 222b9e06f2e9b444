"""
tailer.py

Per-pod log tailing for the rollout monitor.

Each pod gets one TailWorker daemon thread that owns its log stream, parses
every line and puts a LogRecord on the queue shared with the render loop.
A worker never retries: a failed open or read becomes one ERROR record and
the worker ends. WorkerSupervisor keeps the handles and stops every worker
when the monitor exits.
"""

import logging
import queue
import threading
from typing import Dict, List, Optional

import urllib3
from kubernetes.client.rest import ApiException

from davit.kube import ClusterClient, LogStream, describe_error
from davit.models import Generation, LogRecord
from davit.parsing import parse_log_line

logger = logging.getLogger(__name__)

DEFAULT_TAIL_LINES = 10
STREAM_ERRORS = (ApiException, urllib3.exceptions.HTTPError, OSError)


class TailWorker(threading.Thread):
    """Streams one pod's logs onto the shared record queue."""

    def __init__(
        self,
        client: ClusterClient,
        pod_name: str,
        generation: Generation,
        namespace: str,
        records: "queue.Queue[LogRecord]",
        stop_event: threading.Event,
        container: Optional[str] = None,
        tail_lines: int = DEFAULT_TAIL_LINES,
    ):
        super().__init__(name=f"tail-{pod_name}", daemon=True)
        self.client = client
        self.pod_name = pod_name
        self.generation = generation
        self.namespace = namespace
        self.records = records
        self.stop_event = stop_event
        self.container = container
        self.tail_lines = tail_lines
        self._stream: Optional[LogStream] = None
        self._lock = threading.Lock()

    def run(self) -> None:
        try:
            stream = self.client.stream_logs(
                self.pod_name,
                self.namespace,
                container=self.container,
                tail_lines=self.tail_lines,
            )
        except STREAM_ERRORS as exc:
            self._fail(exc)
            return
        except Exception as exc:
            logger.warning("Opening log stream for %s failed unexpectedly", self.pod_name, exc_info=True)
            self._fail(exc)
            return

        with self._lock:
            self._stream = stream
        # Stop may have been requested while the stream was opening.
        if self.stop_event.is_set():
            self.close()
            return

        try:
            for line in stream:
                if self.stop_event.is_set():
                    break
                self._emit(line)
        except STREAM_ERRORS as exc:
            if not self.stop_event.is_set():
                self._fail(exc)
        except Exception as exc:
            if not self.stop_event.is_set():
                logger.warning("Log stream for %s failed unexpectedly", self.pod_name, exc_info=True)
                self._fail(exc)
        finally:
            self.close()
        logger.debug("Log stream for %s ended", self.pod_name)

    def close(self) -> None:
        """Close the open stream, unblocking a pending read."""
        with self._lock:
            stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.close()
            except STREAM_ERRORS:
                logger.debug("Closing log stream for %s failed", self.pod_name, exc_info=True)

    def _emit(self, line: str) -> None:
        parsed = parse_log_line(line)
        self.records.put(
            LogRecord(
                source_pod=self.pod_name,
                generation=self.generation,
                message=parsed.message,
                timestamp=parsed.timestamp,
                severity=parsed.severity,
            )
        )

    def _fail(self, exc: BaseException) -> None:
        logger.debug("Log stream for %s failed: %s", self.pod_name, exc)
        self.records.put(
            LogRecord(
                source_pod=self.pod_name,
                generation=self.generation,
                message=f"Error streaming logs: {describe_error(exc)}",
                severity="ERROR",
            )
        )


class WorkerSupervisor:
    """Spawns TailWorkers and broadcasts a stop signal to all of them."""

    def __init__(
        self,
        client: ClusterClient,
        namespace: str,
        records: "queue.Queue[LogRecord]",
        container: Optional[str] = None,
        tail_lines: int = DEFAULT_TAIL_LINES,
    ):
        self.client = client
        self.namespace = namespace
        self.records = records
        self.container = container
        self.tail_lines = tail_lines
        self.stop_event = threading.Event()
        self.workers: Dict[str, TailWorker] = {}

    def spawn(self, pod_name: str, generation: Generation) -> TailWorker:
        if self.stop_event.is_set():
            raise RuntimeError("supervisor has been shut down")
        worker = TailWorker(
            self.client,
            pod_name,
            generation,
            self.namespace,
            self.records,
            self.stop_event,
            container=self.container,
            tail_lines=self.tail_lines,
        )
        self.workers[pod_name] = worker
        logger.debug("Tailing %s (%s)", pod_name, generation.value)
        worker.start()
        return worker

    def active(self) -> List[str]:
        """Names of pods whose worker is still streaming."""
        return [name for name, worker in self.workers.items() if worker.is_alive()]

    def shutdown(self, timeout: float = 1.0) -> None:
        """Signal every worker to stop and wait briefly for them to finish."""
        self.stop_event.set()
        workers = list(self.workers.values())
        for worker in workers:
            worker.close()
        per_worker = timeout / len(workers) if workers else 0
        for worker in workers:
            worker.join(per_worker)
        still_running = [w.pod_name for w in workers if w.is_alive()]
        if still_running:
            logger.debug("Workers still running after shutdown: %s", still_running)
