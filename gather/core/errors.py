"""Error taxonomy for a collection run.

Fatal errors abort the run, phase-fatal errors skip one phase (or service block),
task-local errors are logged and never leave the task that raised them.
"""

from __future__ import annotations


class GatherError(Exception):
    """Base class for every error raised by the gatherer."""


class ConfigError(GatherError):
    """The configuration file is missing, unreadable or invalid."""


class ClusterClientError(GatherError):
    """The cluster client could not be built from the kubeconfig/context."""


class StagingError(GatherError):
    """The staging directory tree could not be created."""


class ArchiveError(GatherError):
    """The archive could not be written or finalized. The staging tree is kept."""


class CollectionError(GatherError):
    """Task-local failure; converted to a failed CollectionResult by the executor."""


class InvocationError(CollectionError):
    """The command, log fetch or exec session could not be run."""


class EmptyOutputError(CollectionError):
    """The invocation succeeded but produced no stdout bytes."""


class WriteError(CollectionError):
    """The output bytes could not be written to the staging tree."""


class NoContainerError(CollectionError):
    """A workload instance has no container matching the request."""


class ResolutionError(CollectionError):
    """Listing workload instances (or a discovery lookup) failed at the API level."""
