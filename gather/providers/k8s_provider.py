"""Kubernetes API access: per-namespace capabilities, instance resolution, logs and exec sessions."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, runtime_checkable

from gather.core.errors import ClusterClientError, InvocationError, ResolutionError
from gather.core.models import InvocationOutput, WorkloadInstanceHandle

logger = logging.getLogger(__name__)


@runtime_checkable
class NamespaceClient(Protocol):
    """Capability bound to one namespace: list pods, read logs, exec, list secrets."""

    namespace: str

    def list_pods(self, label_selector: str = "", field_selector: str = "") -> List[Dict[str, Any]]: ...

    def read_log(self, pod_name: str, container: str, previous: bool = False) -> str: ...

    def exec(self, pod_name: str, container: str, command: Sequence[str]) -> InvocationOutput: ...

    def list_secrets(self, label_selector: str = "") -> List[Dict[str, Any]]: ...


@runtime_checkable
class Cluster(Protocol):
    def namespace(self, name: str) -> NamespaceClient: ...

    def list_node_names(self) -> List[str]: ...


def _api_error_text(e: Exception) -> str:
    # ApiException carries status/reason; keep the message short for the activity log.
    status = getattr(e, "status", None)
    reason = getattr(e, "reason", None)
    if status is not None or reason is not None:
        return f"{status} {reason}".strip()
    return str(e)


def _open_exec_session(core_v1: Any, pod_name: str, namespace: str, container: str, command: Sequence[str]) -> Any:
    """Open an attached, non-interactive exec session capturing stdout and stderr."""
    from kubernetes.stream import stream

    return stream(
        core_v1.connect_get_namespaced_pod_exec,
        pod_name,
        namespace,
        command=list(command),
        container=container,
        stderr=True,
        stdin=False,
        stdout=True,
        tty=False,
        _preload_content=False,
    )


def _session_returncode(session: Any) -> Optional[int]:
    try:
        return session.returncode
    except Exception:
        # The error channel is not always populated (e.g. older API servers).
        return None


class KubeNamespaceClient:
    """`NamespaceClient` backed by `kubernetes.client.CoreV1Api`."""

    def __init__(self, core_v1: Any, namespace: str) -> None:
        self._core_v1 = core_v1
        self.namespace = namespace

    def __repr__(self) -> str:
        return f"KubeNamespaceClient(namespace={self.namespace!r})"

    def list_pods(self, label_selector: str = "", field_selector: str = "") -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {"namespace": self.namespace}
        if label_selector:
            kwargs["label_selector"] = label_selector
        if field_selector:
            kwargs["field_selector"] = field_selector
        try:
            pod_list = self._core_v1.list_namespaced_pod(**kwargs)
        except Exception as e:
            raise ResolutionError(
                f"listing pods in namespace {self.namespace} "
                f"(label={label_selector!r}, field={field_selector!r}) failed: {_api_error_text(e)}"
            ) from e

        pods: List[Dict[str, Any]] = []
        for pod in pod_list.items or []:
            meta = getattr(pod, "metadata", None)
            spec = getattr(pod, "spec", None)
            pods.append(
                {
                    "name": getattr(meta, "name", None),
                    "namespace": getattr(meta, "namespace", None) or self.namespace,
                    "containers": [c.name for c in (getattr(spec, "containers", None) or [])],
                }
            )
        return pods

    def read_log(self, pod_name: str, container: str, previous: bool = False) -> str:
        try:
            return self._core_v1.read_namespaced_pod_log(
                name=pod_name,
                namespace=self.namespace,
                container=container,
                previous=previous,
                pretty="true",
            )
        except Exception as e:
            which = "previous" if previous else "current"
            raise InvocationError(
                f"reading {which} log of {self.namespace}/{pod_name} container {container} failed: "
                f"{_api_error_text(e)}"
            ) from e

    def exec(self, pod_name: str, container: str, command: Sequence[str]) -> InvocationOutput:
        try:
            session = _open_exec_session(self._core_v1, pod_name, self.namespace, container, command)
        except Exception as e:
            raise InvocationError(
                f"opening exec session on {self.namespace}/{pod_name} container {container} failed: "
                f"{_api_error_text(e)}"
            ) from e
        try:
            # Join: block until the remote process exits so output is never truncated.
            session.run_forever()
            stdout = session.read_stdout() or ""
            stderr = session.read_stderr() or ""
            returncode = _session_returncode(session)
        finally:
            session.close()
        return InvocationOutput(stdout=stdout.encode("utf-8"), stderr=stderr.encode("utf-8"), returncode=returncode)

    def list_secrets(self, label_selector: str = "") -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {"namespace": self.namespace}
        if label_selector:
            kwargs["label_selector"] = label_selector
        try:
            secret_list = self._core_v1.list_namespaced_secret(**kwargs)
        except Exception as e:
            raise ResolutionError(
                f"listing secrets in namespace {self.namespace} (label={label_selector!r}) failed: "
                f"{_api_error_text(e)}"
            ) from e
        return [
            {"name": getattr(getattr(s, "metadata", None), "name", None), "data": dict(getattr(s, "data", None) or {})}
            for s in secret_list.items or []
        ]


class ClusterClient:
    """Cluster-wide entry point; hands out cached per-namespace clients."""

    def __init__(self, api_client: Any) -> None:
        from kubernetes import client

        self._core_v1 = client.CoreV1Api(api_client)
        self._namespaces: Dict[str, KubeNamespaceClient] = {}
        self._lock = threading.Lock()

    def namespace(self, name: str) -> KubeNamespaceClient:
        with self._lock:
            ns_client = self._namespaces.get(name)
            if ns_client is None:
                ns_client = KubeNamespaceClient(self._core_v1, name)
                self._namespaces[name] = ns_client
            return ns_client

    def list_node_names(self) -> List[str]:
        try:
            node_list = self._core_v1.list_node()
        except Exception as e:
            raise ResolutionError(f"listing nodes failed: {_api_error_text(e)}") from e
        return [n.metadata.name for n in node_list.items or [] if getattr(n, "metadata", None)]


def build_cluster_client(kubeconfig_path: str, context: str) -> ClusterClient:
    """Build a `ClusterClient` from a kubeconfig file and a context name. Failure is fatal."""
    try:
        from kubernetes import config
    except Exception as import_err:
        raise ClusterClientError(f"Kubernetes client not available: {import_err}")

    try:
        api_client = config.new_client_from_config(config_file=kubeconfig_path, context=context)
    except Exception as e:
        raise ClusterClientError(f"cannot build cluster client from {kubeconfig_path} (context {context}): {e}") from e
    return ClusterClient(api_client)


def namespace_clients(cluster: Cluster, namespaces: Iterable[str]) -> List[NamespaceClient]:
    return [cluster.namespace(ns) for ns in namespaces]


def resolve_instances(
    clients: Sequence[NamespaceClient],
    label_selector: str = "",
    field_selector: str = "",
) -> List[WorkloadInstanceHandle]:
    """
    Resolve the pods matching the selectors in every namespace.

    Empty selectors are unconstrained. Any namespace whose listing call fails fails
    the whole resolution with `ResolutionError`; zero matches is a normal empty result.
    """
    handles: List[WorkloadInstanceHandle] = []
    for ns_client in clients:
        for pod in ns_client.list_pods(label_selector=label_selector, field_selector=field_selector):
            name = pod.get("name")
            if not name:
                continue
            handles.append(
                WorkloadInstanceHandle(
                    name=name,
                    namespace=pod.get("namespace") or ns_client.namespace,
                    client=ns_client,
                    containers=tuple(pod.get("containers") or ()),
                )
            )
    logger.debug(
        "Resolved %d pod(s) for label=%r field=%r in %s",
        len(handles),
        label_selector,
        field_selector,
        ", ".join(c.namespace for c in clients),
    )
    return handles


def read_container_log(handle: WorkloadInstanceHandle, container: str, previous: bool = False) -> str:
    """Fetch the current (or previous incarnation's) log of exactly one container."""
    return handle.client.read_log(handle.name, handle.container_named(container), previous=previous)


def run_in_container(
    handle: WorkloadInstanceHandle, container: Optional[str], command: Sequence[str]
) -> InvocationOutput:
    """Run `command` inside a container of `handle` and return stdout/stderr separately."""
    return handle.client.exec(handle.name, handle.container_named(container), command)


def run_in_container_combined(handle: WorkloadInstanceHandle, container: Optional[str], command: Sequence[str]) -> str:
    """Combined-stream variant of `run_in_container`: stdout followed by stderr as one string.

    Public API for callers that do not need to log stderr separately.
    """
    out = run_in_container(handle, container, command)
    return (out.stdout + out.stderr).decode("utf-8", errors="replace")
