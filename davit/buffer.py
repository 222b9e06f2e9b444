"""Bounded, generation-partitioned log store fed from the tail workers' queue."""

import queue
from collections import deque
from itertools import islice
from typing import Deque, Iterator, List

from davit.models import Generation, LogRecord

DEFAULT_CAPACITY = 100
DEFAULT_DISPLAY_LINES = 50


def format_log_line(record: LogRecord) -> str:
    """Format a record as "[<pod suffix>] <HH:MM:SS >LEVEL message"."""
    pod_id = record.source_pod.rsplit("-", 1)[-1]
    ts = ""
    if record.timestamp:
        clock = record.timestamp.split("T")[-1].split(".")[0]
        ts = f"{clock} "
    level = record.severity or "INFO"
    return f"[{pod_id}] {ts}{level} {record.message}"


class GenerationBuffer:
    """FIFO of formatted lines; the oldest line is evicted once capacity is reached."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._lines: Deque[str] = deque(maxlen=capacity)

    def append(self, line: str) -> None:
        self._lines.append(line)

    def latest(self, limit: int = DEFAULT_DISPLAY_LINES) -> List[str]:
        """Most recent first, at most limit lines."""
        return list(islice(reversed(self._lines), limit))

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[str]:
        return iter(self._lines)


class MergeBuffer:
    """One GenerationBuffer per generation. Only the render loop touches it."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self.old = GenerationBuffer(capacity)
        self.new = GenerationBuffer(capacity)

    def buffer_for(self, generation: Generation) -> GenerationBuffer:
        return self.new if generation is Generation.NEW else self.old

    def add(self, record: LogRecord) -> None:
        self.buffer_for(record.generation).append(format_log_line(record))

    def drain(self, records: "queue.Queue[LogRecord]") -> int:
        """Move records into the buffers until the queue is empty, without waiting."""
        drained = 0
        while True:
            try:
                record = records.get_nowait()
            except queue.Empty:
                break
            self.add(record)
            drained += 1
        return drained
