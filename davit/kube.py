"""
kube.py

Adapter over the kubernetes client. The monitor only needs two calls:
listing pods by selector and opening a following log stream. Keeping them
behind ClusterClient lets the monitor be driven by fakes in tests.
"""

import codecs
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

import kubernetes
from kubernetes.client import CoreV1Api, V1Pod
from kubernetes.client.rest import ApiException

from davit.errors import ApplyError, ClusterConnectionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PodSnapshot:
    name: str
    phase: str
    image: Optional[str]


def pod_snapshot(pod: V1Pod) -> PodSnapshot:
    """Reduce a V1Pod to the fields the monitor reads."""
    name = (pod.metadata.name if pod.metadata else None) or ""
    phase = (pod.status.phase if pod.status else None) or "Unknown"
    containers: List = (pod.spec.containers if pod.spec else None) or []
    image = containers[0].image if containers else None
    return PodSnapshot(name=name, phase=phase, image=image)


def describe_error(exc: BaseException) -> str:
    """One-line description of a client error, without response headers."""
    if isinstance(exc, ApiException):
        return f"{exc.status} {exc.reason}".strip()
    return str(exc) or type(exc).__name__


class LogStream:
    """Iterates the text lines of a following pod log response."""

    def __init__(self, response):
        self._response = response
        self._closed = False

    def __iter__(self) -> Iterator[str]:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        for chunk in self._response.stream(decode_content=True):
            pending += decoder.decode(chunk)
            while "\n" in pending:
                line, pending = pending.split("\n", 1)
                yield line
        pending += decoder.decode(b"", final=True)
        if pending:
            yield pending

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._response.close()
        self._response.release_conn()


class ClusterClient:
    """Pod listing and log streaming against one kube context."""

    def __init__(self, core: CoreV1Api):
        self.core = core

    @classmethod
    def from_context(cls, context: Optional[str] = None) -> "ClusterClient":
        """
        Build a client for a kubeconfig context.

        Without a context, the in-cluster service account is tried first and
        the current kubeconfig context second.
        """
        if context is None:
            try:
                kubernetes.config.load_incluster_config()
                return cls(CoreV1Api())
            except kubernetes.config.ConfigException:
                pass
        try:
            api_client = kubernetes.config.new_client_from_config(context=context)
        except (kubernetes.config.ConfigException, OSError) as exc:
            raise ClusterConnectionError(
                f"Failed to load kubeconfig for context {context or '<current>'}: {exc}"
            ) from exc
        return cls(CoreV1Api(api_client))

    def list_pods(self, namespace: str, label_selector: str) -> List[PodSnapshot]:
        pods = self.core.list_namespaced_pod(
            namespace=namespace,
            label_selector=label_selector,
        ).items
        return [pod_snapshot(p) for p in pods]

    def stream_logs(
        self,
        pod_name: str,
        namespace: str,
        container: Optional[str] = None,
        tail_lines: int = 10,
    ) -> LogStream:
        response = self.core.read_namespaced_pod_log(
            name=pod_name,
            namespace=namespace,
            container=container,
            follow=True,
            tail_lines=tail_lines,
            _preload_content=False,
        )
        return LogStream(response)


def apply_manifest(path: Path, context: str, namespace: Optional[str] = None) -> str:
    """Run kubectl apply for a manifest and return its output."""
    args = ["kubectl", "--context", context, "apply", "-f", str(path)]
    if namespace:
        args[1:1] = ["--namespace", namespace]
    logger.info("Applying %s with context %s", path, context)
    try:
        result = subprocess.run(args, capture_output=True, text=True)
    except FileNotFoundError as exc:
        raise ApplyError("kubectl not found in PATH") from exc
    if result.returncode != 0:
        raise ApplyError(f"kubectl apply failed: {result.stderr.strip()}")
    return result.stdout
