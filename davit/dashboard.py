"""
dashboard.py

Live rollout monitor.

A single loop owns the terminal and all mutable session state. Each
iteration it refreshes the pod roster (spawning a TailWorker for every new
Running pod), drains the worker queue into the per-generation buffers,
draws one frame and waits briefly for a quit key.
"""

import enum
import logging
import queue
from typing import List, Optional, Protocol

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from davit.buffer import GenerationBuffer, MergeBuffer
from davit.discovery import PodDiscovery
from davit.errors import RenderError
from davit.logs import logging_to_console
from davit.kube import ClusterClient
from davit.models import LogRecord, PodRecord, RolloutTarget
from davit.settings import DavitSettings
from davit.tailer import WorkerSupervisor
from davit.terminal import KeyboardInput

logger = logging.getLogger(__name__)


class MonitorState(enum.Enum):
    RUNNING = "running"
    TERMINATED = "terminated"


class KeySource(Protocol):
    def __enter__(self) -> "KeySource": ...

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]: ...

    def wait_for_quit(self, timeout: float) -> bool: ...


# =========================
# Rendering
# =========================

def log_style(line: str, default: str) -> str:
    if "ERROR" in line or "FATAL" in line:
        return "red"
    if "WARN" in line:
        return "yellow"
    return default


def render_header(target: RolloutTarget, tailing: int = 0) -> Panel:
    text = Text()
    text.append(" Davit Rollout: ", style="bold")
    text.append(target.service, style="bold cyan")
    text.append(f" | Env: {target.environment} | Tag: {target.tag}")
    text.append(f" | {target.resolved_namespace}/{target.label_selector}", style="dim")
    if tailing:
        text.append(f" | Tailing {tailing}", style="dim")
    text.append("  (Press 'q' to exit)", style="dim")
    return Panel(text, border_style="blue")


def render_pods(pods: List[PodRecord]) -> Panel:
    text = Text(no_wrap=True, overflow="ellipsis")
    for i, pod in enumerate(pods):
        if i:
            text.append("\n")
        if pod.is_new:
            text.append(f" [NEW] {pod.name} -> {pod.phase}", style="bold green")
        else:
            text.append(f" [OLD] {pod.name} -> {pod.phase}", style="bright_black")
    if not pods:
        text.append(" Waiting for pods...", style="dim")
    return Panel(text, title=" Pod Status ", title_align="left")


def render_logs(title: str, buffer: GenerationBuffer, limit: int, default_style: str) -> Panel:
    """Most recent line at the top, at most limit lines."""
    text = Text(no_wrap=True, overflow="ellipsis")
    for i, line in enumerate(buffer.latest(limit)):
        if i:
            text.append("\n")
        text.append(line, style=log_style(line, default_style))
    return Panel(text, title=title, title_align="left")


def render_frame(
    target: RolloutTarget,
    pods: List[PodRecord],
    buffers: MergeBuffer,
    display_lines: int = 50,
    tailing: int = 0,
) -> Layout:
    layout = Layout()
    layout.split_column(
        Layout(render_header(target, tailing), name="header", size=3),
        Layout(render_pods(pods), name="pods", ratio=2, minimum_size=6),
        Layout(name="logs", ratio=3),
    )
    layout["logs"].split_row(
        Layout(render_logs(" Old Pod Logs ", buffers.old, display_lines, "bright_black"), name="old"),
        Layout(render_logs(" New Pod Logs ", buffers.new, display_lines, "green"), name="new"),
    )
    return layout


# =========================
# Render/input loop
# =========================

class Dashboard:
    """Owns the monitoring session: roster, tailed set, buffers and the queue's receiving end."""

    def __init__(
        self,
        target: RolloutTarget,
        client: ClusterClient,
        settings: Optional[DavitSettings] = None,
        console: Optional[Console] = None,
    ):
        self.target = target
        self.settings = settings or DavitSettings()
        self.console = console or Console()
        self.records: "queue.Queue[LogRecord]" = queue.Queue()
        self.supervisor = WorkerSupervisor(
            client,
            target.resolved_namespace,
            self.records,
            container=target.container,
            tail_lines=self.settings.tail_lines,
        )
        self.discovery = PodDiscovery(
            client,
            self.supervisor,
            target.resolved_namespace,
            target.label_selector,
            target.tag,
            match=self.settings.generation_match,
        )
        self.buffers = MergeBuffer(self.settings.buffer_capacity)
        self.state = MonitorState.RUNNING

    def step(self) -> None:
        """One discovery tick followed by a drain of the worker queue."""
        self.discovery.tick()
        self.buffers.drain(self.records)

    def render(self) -> Layout:
        return render_frame(
            self.target,
            self.discovery.pods,
            self.buffers,
            display_lines=self.settings.display_lines,
            tailing=len(self.supervisor.active()),
        )

    def run(self, keys: Optional[KeySource] = None) -> MonitorState:
        """
        Run until a quit key is pressed.

        The terminal is restored on every exit path before an error reaches
        the caller. Tail workers are told to stop once the loop exits.
        """
        if keys is None:
            keys = KeyboardInput(output=self.console.file)
        logger.info(
            "Monitoring %s in %s (selector %s, tag %s)",
            self.target.service,
            self.target.resolved_namespace,
            self.target.label_selector,
            self.target.tag,
        )
        live = Live(console=self.console, screen=True, auto_refresh=False)
        try:
            with keys, live, logging_to_console(self.console):
                while self.state is MonitorState.RUNNING:
                    self.step()
                    self._draw(live)
                    if keys.wait_for_quit(self.settings.refresh_interval):
                        self.state = MonitorState.TERMINATED
        except KeyboardInterrupt:
            self.state = MonitorState.TERMINATED
        finally:
            self.supervisor.shutdown()
        logger.info("Stopped monitoring %s", self.target.service)
        return self.state

    def _draw(self, live: Live) -> None:
        try:
            live.update(self.render(), refresh=True)
        except Exception as exc:
            raise RenderError(f"Draw error: {exc}") from exc
