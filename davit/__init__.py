"""davit: patch a workload's image tag and watch the rollout live."""

__version__ = "0.1.0"
