"""Plain data types shared by the rollout monitor."""

import enum
from dataclasses import dataclass
from typing import Optional

DEFAULT_NAMESPACE = "default"


class Generation(enum.Enum):
    OLD = "old"
    NEW = "new"


@dataclass(frozen=True)
class PodRecord:
    """One pod as seen by the latest discovery tick."""

    name: str
    phase: str
    generation: Generation

    @property
    def is_new(self) -> bool:
        return self.generation is Generation.NEW


@dataclass(frozen=True)
class LogRecord:
    """A single parsed log line attributed to the pod that produced it."""

    source_pod: str
    generation: Generation
    message: str
    timestamp: Optional[str] = None
    severity: Optional[str] = None


@dataclass(frozen=True)
class RolloutTarget:
    """What the monitor is watching: a workload, where it lives and the tag rolled out."""

    service: str
    environment: str
    tag: str
    namespace: Optional[str] = None
    selector: Optional[str] = None
    container: Optional[str] = None

    @property
    def resolved_namespace(self) -> str:
        return self.namespace or DEFAULT_NAMESPACE

    @property
    def label_selector(self) -> str:
        return self.selector or f"app={self.service}"
