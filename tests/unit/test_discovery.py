"""Unit tests for PodDiscovery."""
from unittest.mock import MagicMock

import pytest
import urllib3
from kubernetes.client.exceptions import ApiValueError
from kubernetes.client.rest import ApiException

from davit.discovery import PodDiscovery
from davit.models import Generation, PodRecord
from davit.parsing import MATCH_EXACT
from tests.fakes import FakeClusterClient, pod


def make_discovery(client, tag="v2", match="contains"):
    supervisor = MagicMock()
    return PodDiscovery(client, supervisor, "web", "app=api", tag, match=match), supervisor


@pytest.mark.unit
class TestPodDiscovery:
    """Test PodDiscovery.tick."""

    def test_lists_with_namespace_and_selector(self):
        client = FakeClusterClient(pod_lists=[[]])
        discovery, _ = make_discovery(client)
        assert discovery.tick() is True
        assert client.list_calls == [("web", "app=api")]

    def test_classifies_and_records_pods(self):
        client = FakeClusterClient(pod_lists=[[
            pod("api-new", image="gcr.io/proj/app:v2"),
            pod("api-old", image="gcr.io/proj/app:v1"),
        ]])
        discovery, _ = make_discovery(client)
        discovery.tick()
        assert discovery.pods == [
            PodRecord("api-new", "Running", Generation.NEW),
            PodRecord("api-old", "Running", Generation.OLD),
        ]

    def test_spawns_worker_for_running_pods(self):
        client = FakeClusterClient(pod_lists=[[
            pod("api-new", image="gcr.io/proj/app:v2"),
            pod("api-old", image="gcr.io/proj/app:v1"),
        ]])
        discovery, supervisor = make_discovery(client)
        discovery.tick()
        supervisor.spawn.assert_any_call("api-new", Generation.NEW)
        supervisor.spawn.assert_any_call("api-old", Generation.OLD)
        assert discovery.tailed == {"api-new", "api-old"}

    def test_skips_pods_that_are_not_running(self):
        client = FakeClusterClient(pod_lists=[[
            pod("api-pending", phase="Pending"),
            pod("api-done", phase="Succeeded"),
        ]])
        discovery, supervisor = make_discovery(client)
        discovery.tick()
        supervisor.spawn.assert_not_called()
        assert discovery.tailed == set()
        assert [p.phase for p in discovery.pods] == ["Pending", "Succeeded"]

    def test_pod_is_tailed_once_across_ticks(self):
        client = FakeClusterClient(pod_lists=[
            [pod("api-1")],
            [pod("api-1"), pod("api-2")],
            [pod("api-1"), pod("api-2")],
        ])
        discovery, supervisor = make_discovery(client)
        for _ in range(3):
            discovery.tick()
        spawned = [c.args[0] for c in supervisor.spawn.call_args_list]
        assert spawned == ["api-1", "api-2"]

    def test_pod_becoming_running_is_tailed_then(self):
        client = FakeClusterClient(pod_lists=[
            [pod("api-1", phase="Pending")],
            [pod("api-1", phase="Running")],
        ])
        discovery, supervisor = make_discovery(client)
        discovery.tick()
        supervisor.spawn.assert_not_called()
        discovery.tick()
        supervisor.spawn.assert_called_once_with("api-1", Generation.NEW)

    def test_tailed_set_survives_pod_disappearing(self):
        client = FakeClusterClient(pod_lists=[[pod("api-1")], [], [pod("api-1")]])
        discovery, supervisor = make_discovery(client)
        for _ in range(3):
            discovery.tick()
        assert supervisor.spawn.call_count == 1
        assert discovery.tailed == {"api-1"}

    def test_roster_is_replaced_wholesale(self):
        client = FakeClusterClient(pod_lists=[[pod("api-1"), pod("api-2")], [pod("api-3")]])
        discovery, _ = make_discovery(client)
        discovery.tick()
        discovery.tick()
        assert [p.name for p in discovery.pods] == ["api-3"]

    @pytest.mark.parametrize(
        "error",
        [
            ApiException(status=500, reason="Internal Server Error"),
            urllib3.exceptions.MaxRetryError(None, "/api/v1/pods"),
            ConnectionResetError("reset"),
            ApiValueError("Invalid value for `items`, must not be `None`"),
        ],
    )
    def test_list_failure_keeps_previous_state(self, error):
        client = FakeClusterClient(pod_lists=[[pod("api-1")], error])
        discovery, supervisor = make_discovery(client)
        discovery.tick()
        before = list(discovery.pods)
        assert discovery.tick() is False
        assert discovery.pods == before
        assert discovery.tailed == {"api-1"}
        assert supervisor.spawn.call_count == 1

    def test_exact_match_strategy(self):
        client = FakeClusterClient(pod_lists=[[pod("api-1", image="gcr.io/proj/app:v10")]])
        discovery, _ = make_discovery(client, tag="v1", match=MATCH_EXACT)
        discovery.tick()
        assert discovery.pods[0].generation is Generation.OLD
