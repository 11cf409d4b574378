"""
Pytest config.

Pins the repo root on sys.path so `import gather` / `import main` work whether or not
the project is installed, and provides in-memory stand-ins for the cluster API and
for external commands so no test needs a live cluster, kubectl or helm.
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from gather.core.errors import InvocationError, ResolutionError  # noqa: E402
from gather.core.models import CollectionProfile, InvocationOutput  # noqa: E402

FIXED_NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _selector_matches(labels: Dict[str, str], selector: str) -> bool:
    if not selector:
        return True
    for term in selector.split(","):
        term = term.strip()
        if not term:
            continue
        key, _, value = term.partition("=")
        if labels.get(key.strip()) != value.strip():
            return False
    return True


class FakeNamespaceClient:
    def __init__(
        self,
        namespace: str,
        pods: Optional[List[Dict[str, Any]]] = None,
        logs: Optional[Dict[Tuple[str, str, bool], str]] = None,
        secrets: Optional[List[Dict[str, Any]]] = None,
        exec_handler: Optional[Callable[[str, str, Sequence[str]], InvocationOutput]] = None,
        fail_list: bool = False,
    ) -> None:
        self.namespace = namespace
        self.pods = pods or []
        self.logs = logs or {}
        self.secrets = secrets or []
        self.exec_handler = exec_handler
        self.fail_list = fail_list
        self.list_calls: List[Tuple[str, str]] = []
        self.exec_calls: List[Tuple[str, str, Tuple[str, ...]]] = []
        self.secret_calls: List[str] = []

    def list_pods(self, label_selector: str = "", field_selector: str = "") -> List[Dict[str, Any]]:
        self.list_calls.append((label_selector, field_selector))
        if self.fail_list:
            raise ResolutionError(f"listing pods in namespace {self.namespace} failed: 403 Forbidden")
        return [
            {"name": p["name"], "namespace": self.namespace, "containers": list(p.get("containers", []))}
            for p in self.pods
            if _selector_matches(p.get("labels", {}), label_selector)
        ]

    def read_log(self, pod_name: str, container: str, previous: bool = False) -> str:
        key = (pod_name, container, previous)
        if key not in self.logs:
            which = "previous" if previous else "current"
            where = f"{self.namespace}/{pod_name} container {container}"
            raise InvocationError(f"reading {which} log of {where} failed: 400")
        return self.logs[key]

    def exec(self, pod_name: str, container: str, command: Sequence[str]) -> InvocationOutput:
        self.exec_calls.append((pod_name, container, tuple(command)))
        if self.exec_handler is not None:
            return self.exec_handler(pod_name, container, command)
        return InvocationOutput(stdout=f"exec {pod_name}/{container}\n".encode("utf-8"))

    def list_secrets(self, label_selector: str = "") -> List[Dict[str, Any]]:
        self.secret_calls.append(label_selector)
        return list(self.secrets)


class FakeCluster:
    def __init__(self, namespaces: Optional[Dict[str, FakeNamespaceClient]] = None, nodes=None, fail_nodes=False):
        self.namespaces = dict(namespaces or {})
        self.nodes = list(nodes or [])
        self.fail_nodes = fail_nodes

    def namespace(self, name: str) -> FakeNamespaceClient:
        if name not in self.namespaces:
            self.namespaces[name] = FakeNamespaceClient(name)
        return self.namespaces[name]

    def list_node_names(self) -> List[str]:
        if self.fail_nodes:
            raise ResolutionError("listing nodes failed: 401 Unauthorized")
        return list(self.nodes)


class FakeRunner:
    """Records every argv; echoes it back as stdout unless a handler overrides it."""

    def __init__(self, handler: Optional[Callable[[Sequence[str]], Optional[InvocationOutput]]] = None) -> None:
        self.handler = handler
        self.calls: List[Tuple[str, ...]] = []

    def __call__(self, argv: Sequence[str]) -> InvocationOutput:
        self.calls.append(tuple(argv))
        if self.handler is not None:
            out = self.handler(argv)
            if out is not None:
                return out
        if "ls" in argv and "json" in argv:
            return InvocationOutput(stdout=b"[]")
        return InvocationOutput(stdout=(" ".join(argv) + "\n").encode("utf-8"))


@pytest.fixture
def make_profile(tmp_path):
    def _make(**overrides: Any) -> CollectionProfile:
        data: Dict[str, Any] = {
            "context_name": "test-ctx",
            "context_namespace": ["ns-a", "ns-b"],
            "output_directory_path": str(tmp_path / "out"),
            "current_logs": True,
            "previous_logs": False,
        }
        data.update(overrides)
        return CollectionProfile.model_validate(data)

    return _make


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def two_namespace_cluster() -> FakeCluster:
    """One single-container pod per namespace, current logs available, no service labels."""
    ns_a = FakeNamespaceClient(
        "ns-a",
        pods=[{"name": "web-1", "containers": ["web"]}],
        logs={("web-1", "web", False): "web started\n"},
    )
    ns_b = FakeNamespaceClient(
        "ns-b",
        pods=[{"name": "db-1", "containers": ["db"]}],
        logs={("db-1", "db", False): "db started\n"},
    )
    return FakeCluster(namespaces={"ns-a": ns_a, "ns-b": ns_b}, nodes=["node-1", "node-2"])
