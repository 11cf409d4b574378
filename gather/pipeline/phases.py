"""Task builders for the workload, infrastructure and helm phases."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from gather.core.errors import CollectionError
from gather.core.models import Category, CollectionProfile, HelmRelease
from gather.pipeline.tasks import CollectionTask, CommandTask, log_tasks
from gather.providers.command_provider import CommandRunner, helm_argv, kubectl_argv, run_command
from gather.providers.k8s_provider import Cluster, namespace_clients, resolve_instances

logger = logging.getLogger(__name__)

_HELM_RELEASES = TypeAdapter(List[HelmRelease])


@dataclass(frozen=True)
class PhaseContext:
    """Read-only inputs shared by every phase builder."""

    profile: CollectionProfile
    cluster: Cluster
    kubeconfig: Optional[str] = None
    runner: CommandRunner = field(default=run_command, repr=False)

    def kubectl(self, *args: str, category: Category, filename: str) -> CommandTask:
        argv = kubectl_argv(self.profile, *args, kubeconfig=self.kubeconfig)
        return CommandTask(argv=tuple(argv), category=category, filename=filename, runner=self.runner)

    def helm(self, *args: str, filename: str) -> CommandTask:
        argv = helm_argv(self.profile, *args, kubeconfig=self.kubeconfig)
        return CommandTask(argv=tuple(argv), category=Category.HELM, filename=filename, runner=self.runner)


def build_pod_tasks(ctx: PhaseContext) -> List[CollectionTask]:
    """Pod listings per namespace, one describe per pod, and per-container logs when enabled."""
    profile = ctx.profile
    tasks: List[CollectionTask] = []
    for ns in profile.namespaces:
        for output, ext in (("wide", "list"), ("json", "json")):
            filename = f"kubernetes_pods_{ns}.{ext}"
            tasks.append(ctx.kubectl("get", "pod", "-n", ns, "-o", output, category=Category.PODS, filename=filename))

    instances = resolve_instances(namespace_clients(ctx.cluster, profile.namespaces))
    for inst in instances:
        tasks.append(
            ctx.kubectl(
                "describe", "pod", inst.name, "-n", inst.namespace,
                category=Category.PODS,
                filename=f"{inst.namespace}_{inst.name}.description",
            )
        )
        if not inst.containers:
            logger.warning("Pod %s/%s declares no containers, no logs will be collected", inst.namespace, inst.name)
        if profile.current_logs:
            tasks.extend(log_tasks(inst, previous=False))
        if profile.previous_logs:
            tasks.extend(log_tasks(inst, previous=True))
    return tasks


def build_infra_tasks(ctx: PhaseContext) -> List[CollectionTask]:
    nodes = ctx.cluster.list_node_names()
    tasks: List[CollectionTask] = [
        ctx.kubectl("get", "nodes", "-o", "wide", category=Category.INFRA, filename="kubernetes_nodes.list"),
        ctx.kubectl("get", "nodes", "-o", "json", category=Category.INFRA, filename="kubernetes_nodes_list.json"),
        ctx.kubectl("version", "-o", "json", category=Category.INFRA, filename="kubernetes_version.json"),
        ctx.kubectl("events", "-A", category=Category.INFRA, filename="kubernetes_cluster.events"),
    ]
    for node in nodes:
        tasks.append(ctx.kubectl("describe", "node", node, category=Category.INFRA, filename=f"{node}.description"))
    return tasks


def discover_releases(ctx: PhaseContext, namespace: str) -> List[HelmRelease]:
    """
    Enumerate helm releases in one namespace.

    Best-effort: a failing or unparsable `helm ls` is logged and yields no releases,
    so the other namespaces still get their value dumps.
    """
    argv = helm_argv(ctx.profile, "ls", "-n", namespace, "-o", "json", kubeconfig=ctx.kubeconfig)
    try:
        out = ctx.runner(argv)
    except CollectionError as e:
        logger.warning("Helm release discovery in %s failed: %s", namespace, e)
        return []
    if out.stderr:
        logger.warning("`%s` wrote to stderr: %s", " ".join(argv), out.stderr.decode("utf-8", errors="replace").strip())
    if not out.stdout.strip():
        logger.warning("Helm release discovery in %s returned no output", namespace)
        return []
    try:
        return _HELM_RELEASES.validate_json(out.stdout)
    except ValidationError as e:
        logger.warning("Helm release discovery in %s returned unparsable output: %s", namespace, e)
        return []


def build_helm_tasks(ctx: PhaseContext) -> List[CollectionTask]:
    """Discovery sub-step first (`helm ls -o json`), then the version/list/values batch."""
    tasks: List[CollectionTask] = [ctx.helm("version", filename="helm_version.log")]
    for ns in ctx.profile.namespaces:
        tasks.append(ctx.helm("ls", "-n", ns, filename=f"helm_list_{ns}.log"))
        for release in discover_releases(ctx, ns):
            tasks.append(
                ctx.helm(
                    "get", "values", "--all", release.name, "-n", ns, "-o", "yaml",
                    filename=f"helm_values_{release.name}_{ns}.yaml",
                )
            )
    return tasks
