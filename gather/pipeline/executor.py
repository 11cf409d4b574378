"""
Fan-out executor.

Within a phase every task runs concurrently on its own worker thread and owns its
invoke -> validate -> write pipeline. A failing task is converted into a failed
`CollectionResult` and logged; it never cancels its siblings. A phase completes
only when all of its tasks have resolved, and phases run strictly in order.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, List, Sequence

from gather.core.errors import CollectionError, EmptyOutputError, GatherError, InvocationError
from gather.core.models import CollectionResult, PhaseReport
from gather.pipeline.tasks import CollectionTask
from gather.storage.local_store import StagingTree

logger = logging.getLogger(__name__)


@dataclass
class Phase:
    """An ordered stage of the run. `build` may block (API listing, discovery) and may raise."""

    name: str
    build: Callable[[], List[CollectionTask]]


def _failure(task: CollectionTask, error: CollectionError) -> CollectionResult:
    logger.warning("%s", error)
    return CollectionResult(description=task.describe(), category=task.category, filename=task.filename, error=error)


def execute_task(task: CollectionTask, staging: StagingTree) -> CollectionResult:
    """Invoke one task, validate its stdout and append it to its category folder."""
    description = task.describe()
    try:
        output = task.invoke()
        if output.stderr:
            stderr = output.stderr.decode("utf-8", errors="replace").strip()
            logger.warning("%s wrote to stderr: %s", description, stderr)
        path = staging.write(
            task.category,
            task.filename,
            output.stdout,
            EmptyOutputError(f"{description} returned no output"),
        )
    except CollectionError as e:
        return _failure(task, e)
    except Exception as e:
        return _failure(task, InvocationError(f"{description} failed: {e}"))

    logger.info("File has been created %s", path)
    return CollectionResult(description=description, category=task.category, filename=task.filename, path=str(path))


async def run_phase(
    tasks: Sequence[CollectionTask], staging: StagingTree, *, name: str = "phase"
) -> List[CollectionResult]:
    """Run every task concurrently and wait for all of them (join barrier)."""
    if not tasks:
        return []
    loop = asyncio.get_running_loop()
    # One worker per task: fan-out inside a phase is intentionally unbounded.
    with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix=f"gather-{name}") as pool:
        futures = [loop.run_in_executor(pool, execute_task, task, staging) for task in tasks]
        outcomes = await asyncio.gather(*futures, return_exceptions=True)

    results: List[CollectionResult] = []
    for task, outcome in zip(tasks, outcomes):
        if isinstance(outcome, BaseException):
            results.append(_failure(task, InvocationError(f"{task.describe()} crashed: {outcome}")))
        else:
            results.append(outcome)
    return results


async def run_phases(phases: Sequence[Phase], staging: StagingTree) -> List[PhaseReport]:
    reports: List[PhaseReport] = []
    for phase in phases:
        report = PhaseReport(name=phase.name)
        reports.append(report)
        try:
            tasks = await asyncio.to_thread(phase.build)
        except GatherError as e:
            report.error = str(e)
            logger.error("Phase %s aborted: %s", phase.name, e)
            continue

        if not tasks:
            report.skipped = True
            logger.info("Phase %s: nothing to collect, skipped", phase.name)
            continue

        logger.info("Phase %s: running %d task(s)", phase.name, len(tasks))
        report.results = await run_phase(tasks, staging, name=phase.name)
        logger.info("Phase %s complete: %d succeeded, %d failed", phase.name, report.succeeded, report.failed)
    return reports
