from __future__ import annotations

import logging
from typing import List, Protocol

from gather.core.models import CollectionProfile, WorkloadInstanceHandle
from gather.pipeline.executor import Phase
from gather.pipeline.phases import PhaseContext
from gather.pipeline.tasks import CollectionTask
from gather.providers.k8s_provider import namespace_clients, resolve_instances

logger = logging.getLogger(__name__)


class ServiceDiagnostics(Protocol):
    """
    Contract for one service block.

    - `selector` returns the label selector locating the service's pods; an empty
      selector disables the block (it would otherwise match every pod).
    - `build_tasks` may do blocking discovery (e.g. read a credential) and raise
      `ResolutionError`, which aborts this block only.
    """

    service_id: str

    def selector(self, profile: CollectionProfile) -> str:
        """Label selector for this service's pods."""

    def build_tasks(self, ctx: PhaseContext, instances: List[WorkloadInstanceHandle]) -> List[CollectionTask]:
        """Exec tasks for the resolved pods (never called with an empty list)."""


def service_phase(service: ServiceDiagnostics, ctx: PhaseContext) -> Phase:
    def _build() -> List[CollectionTask]:
        selector = service.selector(ctx.profile)
        if not selector:
            logger.info("%s diagnostics disabled (no label selector configured)", service.service_id)
            return []
        namespaces = ctx.profile.namespaces_for(service.service_id)
        instances = resolve_instances(namespace_clients(ctx.cluster, namespaces), label_selector=selector)
        if not instances:
            logger.info("No %s pods match %r, skipping", service.service_id, selector)
            return []
        logger.info("Found %d %s pod(s)", len(instances), service.service_id)
        return service.build_tasks(ctx, instances)

    return Phase(name=f"apps:{service.service_id}", build=_build)
