"""
Collection task variants.

Every task carries its own invocation behaviour plus the metadata the executor
needs to route its output (category folder + filename). The set is closed:
external command, container log fetch, in-container exec.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from gather.core.models import Category, InvocationOutput, WorkloadInstanceHandle
from gather.providers.command_provider import CommandRunner, run_command
from gather.providers.k8s_provider import read_container_log, run_in_container


@dataclass(frozen=True)
class CommandTask:
    argv: Tuple[str, ...]
    category: Category
    filename: str
    runner: CommandRunner = field(default=run_command, repr=False, compare=False)

    def describe(self) -> str:
        return f"command `{' '.join(self.argv)}`"

    def invoke(self) -> InvocationOutput:
        return self.runner(self.argv)


@dataclass(frozen=True)
class LogTask:
    instance: WorkloadInstanceHandle
    container: str
    previous: bool
    category: Category
    filename: str

    def describe(self) -> str:
        which = "previous" if self.previous else "current"
        return f"{which} log of {self.instance.namespace}/{self.instance.name} container {self.container}"

    def invoke(self) -> InvocationOutput:
        text = read_container_log(self.instance, self.container, previous=self.previous)
        return InvocationOutput(stdout=(text or "").encode("utf-8"))


@dataclass(frozen=True)
class ExecTask:
    instance: WorkloadInstanceHandle
    command: Tuple[str, ...]
    category: Category
    filename: str
    # None means the instance's first container.
    container: Optional[str] = None
    # Shown in the activity log instead of the command (which may embed credentials).
    label: Optional[str] = None

    def describe(self) -> str:
        what = self.label or " ".join(self.command)
        where = self.container or "<first container>"
        return f"exec `{what}` in {self.instance.namespace}/{self.instance.name} container {where}"

    def invoke(self) -> InvocationOutput:
        return run_in_container(self.instance, self.container, self.command)


CollectionTask = Union[CommandTask, LogTask, ExecTask]


def log_tasks(instance: WorkloadInstanceHandle, *, previous: bool, category: Category = Category.PODS) -> List[LogTask]:
    """One log task per declared container of `instance`."""
    which = "previous" if previous else "current"
    return [
        LogTask(
            instance=instance,
            container=container,
            previous=previous,
            category=category,
            filename=f"logs_{which}_{instance.namespace}_{instance.name}_{container}.log",
        )
        for container in instance.containers
    ]
