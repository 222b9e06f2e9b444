"""Pod discovery: keep the pod roster current and tail every new Running pod once."""

import logging
from typing import List, Set

import urllib3
from kubernetes.client.rest import ApiException

from davit.kube import ClusterClient
from davit.models import PodRecord
from davit.parsing import MATCH_CONTAINS, classify_generation
from davit.tailer import WorkerSupervisor

logger = logging.getLogger(__name__)

POD_PHASE_RUNNING = "Running"
LIST_ERRORS = (ApiException, urllib3.exceptions.HTTPError, OSError, ValueError)


class PodDiscovery:
    """
    Lists pods for a selector on every tick.

    `pods` is replaced wholesale on each successful list. `tailed` only ever
    grows, so a pod name gets at most one TailWorker for the lifetime of the
    monitor even if it shows up again later.
    """

    def __init__(
        self,
        client: ClusterClient,
        supervisor: WorkerSupervisor,
        namespace: str,
        label_selector: str,
        tag: str,
        match: str = MATCH_CONTAINS,
    ):
        self.client = client
        self.supervisor = supervisor
        self.namespace = namespace
        self.label_selector = label_selector
        self.tag = tag
        self.match = match
        self.pods: List[PodRecord] = []
        self.tailed: Set[str] = set()

    def tick(self) -> bool:
        """Refresh the roster. Returns False when the list call failed and nothing changed."""
        try:
            snapshots = self.client.list_pods(self.namespace, self.label_selector)
        except LIST_ERRORS as exc:
            logger.debug(
                "Listing pods in %s with %r failed, keeping previous roster: %s",
                self.namespace,
                self.label_selector,
                exc,
            )
            return False

        current: List[PodRecord] = []
        for pod in snapshots:
            generation = classify_generation(pod.image, self.tag, self.match)
            if pod.phase == POD_PHASE_RUNNING and pod.name not in self.tailed:
                self.tailed.add(pod.name)
                self.supervisor.spawn(pod.name, generation)
            current.append(PodRecord(name=pod.name, phase=pod.phase, generation=generation))

        self.pods = current
        return True
