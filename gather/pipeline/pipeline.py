"""Top-level collection run: staging -> ordered phases -> archive."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from gather.core.models import CollectionProfile, RunReport
from gather.pipeline.executor import Phase, run_phases
from gather.pipeline.phases import PhaseContext, build_helm_tasks, build_infra_tasks, build_pod_tasks
from gather.providers.command_provider import CommandRunner, run_command
from gather.providers.k8s_provider import Cluster
from gather.services import ServiceDiagnostics, get_default_services, service_phase
from gather.storage.archive import create_archive
from gather.storage.local_store import StagingTree

logger = logging.getLogger(__name__)


def build_phases(ctx: PhaseContext, services: Sequence[ServiceDiagnostics]) -> List[Phase]:
    """Phase order: workloads, infrastructure, helm releases, then each service block."""
    phases = [
        Phase(name="pods", build=lambda: build_pod_tasks(ctx)),
        Phase(name="infra", build=lambda: build_infra_tasks(ctx)),
        Phase(name="helm", build=lambda: build_helm_tasks(ctx)),
    ]
    phases.extend(service_phase(s, ctx) for s in services)
    return phases


def run_collection(
    profile: CollectionProfile,
    cluster: Cluster,
    *,
    kubeconfig: Optional[str] = None,
    run_log_path: Optional[str] = None,
    runner: CommandRunner = run_command,
    services: Optional[Sequence[ServiceDiagnostics]] = None,
    now: Optional[datetime] = None,
) -> RunReport:
    """
    Run one collection and produce `info_<context>_<timestamp>.tar.gz`.

    Staging creation and archive failures are fatal (`StagingError`/`ArchiveError`);
    phase failures are recorded on the returned report and the run carries on.
    """
    now = now or datetime.now(timezone.utc)
    staging = StagingTree.create(profile.output_directory, profile.context_name, now)
    for category, folder in staging.folders().items():
        logger.info("Directory has been created %s", folder)
    logger.info("Context Name: %s", profile.context_name)
    logger.info("Context Namespaces: %s", ", ".join(profile.namespaces))

    ctx = PhaseContext(profile=profile, cluster=cluster, kubeconfig=kubeconfig, runner=runner)
    phases = build_phases(ctx, get_default_services() if services is None else services)

    report = RunReport(staging_root=staging.root)
    report.phases = asyncio.run(run_phases(phases, staging))

    report.archive_path = create_archive(staging.root, staging.archive_path, run_log_path)
    summary = report.summary()
    logger.info(
        "Collection has been completed: %d file(s) written, %d task(s) failed, archive %s",
        summary["succeeded"],
        summary["failed"],
        summary["archive"],
    )
    for err in report.phase_errors:
        logger.error("Phase failed: %s", err)
    return report
