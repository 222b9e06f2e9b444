"""Exception hierarchy for davit.

Only fatal-before-start and drawing failures leave the monitor; everything
else the monitor absorbs and shows in the dashboard instead.
"""


class DavitError(Exception):
    """Base class for errors reported to the operator."""


class ConfigError(DavitError):
    """Configuration file missing, unreadable or invalid."""


class ClusterConnectionError(DavitError):
    """Kubernetes client could not be constructed."""


class RenderError(DavitError):
    """Drawing a dashboard frame failed."""


class BlueprintError(DavitError):
    """Manifest could not be patched."""


class RegistryError(DavitError):
    """Image registry listing failed."""


class GitError(DavitError):
    """A git step of the deploy failed."""


class ApplyError(DavitError):
    """kubectl apply failed."""
