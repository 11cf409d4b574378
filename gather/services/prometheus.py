"""Prometheus server status, read from each server's local HTTP API."""

from __future__ import annotations

from typing import List

from gather.core.models import Category, CollectionProfile, WorkloadInstanceHandle
from gather.pipeline.phases import PhaseContext
from gather.pipeline.tasks import CollectionTask, ExecTask

DEFAULT_SELECTOR = "app.kubernetes.io/name=prometheus"
CONTAINER = "prometheus"
BASE_URL = "http://localhost:9090/api/v1"

ENDPOINTS = (
    ("runtimeinfo", "status/runtimeinfo"),
    ("buildinfo", "status/buildinfo"),
    ("tsdb", "status/tsdb"),
    ("flags", "status/flags"),
    ("targets", "targets?state=active"),
)


class PrometheusDiagnostics:
    service_id = "prometheus"

    def selector(self, profile: CollectionProfile) -> str:
        return profile.selector_for(self.service_id, DEFAULT_SELECTOR)

    def build_tasks(self, ctx: PhaseContext, instances: List[WorkloadInstanceHandle]) -> List[CollectionTask]:
        tasks: List[CollectionTask] = []
        for inst in instances:
            # Server pods usually carry a config-reloader sidecar; target the server itself.
            container = CONTAINER if CONTAINER in inst.containers else None
            for name, path in ENDPOINTS:
                tasks.append(
                    ExecTask(
                        instance=inst,
                        command=("wget", "-q", "-O", "-", f"{BASE_URL}/{path}"),
                        category=Category.APPS,
                        filename=f"prometheus_{name}_{inst.namespace}_{inst.name}.json",
                        container=container,
                    )
                )
        return tasks
