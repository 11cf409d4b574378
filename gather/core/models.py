"""Canonical domain models for a collection run.

Design note:
- `CollectionProfile` is built once from the configuration file and is frozen for the run.
- `WorkloadInstanceHandle` is shared read-only by every task that targets the same pod.
- Task variants live in `gather.pipeline.tasks`; results and reports live here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gather.core.errors import CollectionError, NoContainerError

if TYPE_CHECKING:
    from gather.providers.k8s_provider import NamespaceClient


class BaseModelAllowExtra(BaseModel):
    model_config = ConfigDict(extra="allow")


class Category(str, Enum):
    """Category folders under the staging tree, one per kind of diagnostics."""

    PODS = "pods"
    INFRA = "infra"
    HELM = "helm"
    APPS = "apps"


class CollectionProfile(BaseModel):
    """Immutable run configuration."""

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    context_name: str
    namespaces: Tuple[str, ...] = Field(alias="context_namespace")
    output_directory: str = Field(default="", alias="output_directory_path")
    current_logs: bool = False
    previous_logs: bool = False
    # Historical config key; an empty selector disables the Kafka block.
    kafka_label: str = Field(default="", alias="non_exfo_kafka_product_kubernetes_label")
    service_selectors: Dict[str, str] = Field(default_factory=dict)
    service_namespaces: Dict[str, Tuple[str, ...]] = Field(default_factory=dict)

    @field_validator("context_name")
    @classmethod
    def _context_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("context_name must not be empty")
        return v

    @field_validator("namespaces")
    @classmethod
    def _unique_namespaces(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        out: List[str] = []
        for ns in v:
            ns = (ns or "").strip()
            if ns and ns not in out:
                out.append(ns)
        if not out:
            raise ValueError("at least one namespace is required")
        return tuple(out)

    @field_validator("output_directory")
    @classmethod
    def _strip_trailing_separator(cls, v: str) -> str:
        v = (v or "").strip()
        stripped = v.rstrip("/" + os.sep)
        return stripped or v

    def namespaces_for(self, service: str) -> Tuple[str, ...]:
        """Namespaces a service block should search (hint first, profile namespaces otherwise)."""
        hinted = self.service_namespaces.get(service)
        return tuple(hinted) if hinted else self.namespaces

    def selector_for(self, service: str, default: str) -> str:
        return self.service_selectors.get(service, default)


@dataclass(frozen=True)
class WorkloadInstanceHandle:
    """One running pod plus the namespace-bound client used to reach it."""

    name: str
    namespace: str
    client: "NamespaceClient" = field(repr=False, compare=False)
    containers: Tuple[str, ...] = ()

    def first_container(self) -> str:
        if not self.containers:
            raise NoContainerError(f"pod {self.namespace}/{self.name} declares no containers")
        return self.containers[0]

    def container_named(self, name: Optional[str]) -> str:
        """Return `name` if the pod declares it; fall back to the first container when `name` is None."""
        if name is None:
            return self.first_container()
        if name not in self.containers:
            raise NoContainerError(f"pod {self.namespace}/{self.name} has no container {name!r}")
        return name


@dataclass(frozen=True)
class InvocationOutput:
    """Raw output of one invocation. Only `stdout` is persisted."""

    stdout: bytes
    stderr: bytes = b""
    returncode: Optional[int] = None


class HelmRelease(BaseModelAllowExtra):
    name: str
    namespace: str = ""
    revision: str = ""
    updated: str = ""
    status: str = ""
    chart: str = ""
    app_version: str = ""


@dataclass(frozen=True)
class CollectionResult:
    """Outcome of one task: a written file, or the failure that prevented it."""

    description: str
    category: Category
    filename: str
    path: Optional[str] = None
    error: Optional[CollectionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class PhaseReport:
    name: str
    results: List[CollectionResult] = field(default_factory=list)
    error: Optional[str] = None
    skipped: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)


@dataclass
class RunReport:
    staging_root: str
    phases: List[PhaseReport] = field(default_factory=list)
    archive_path: Optional[str] = None

    @property
    def phase_errors(self) -> List[str]:
        return [f"{p.name}: {p.error}" for p in self.phases if p.error]

    def summary(self) -> Dict[str, Any]:
        return {
            "archive": self.archive_path,
            "succeeded": sum(p.succeeded for p in self.phases),
            "failed": sum(p.failed for p in self.phases),
            "phase_errors": self.phase_errors,
        }
