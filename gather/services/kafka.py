"""Kafka broker diagnostics via the CLI tools shipped in the broker image."""

from __future__ import annotations

from typing import List

from gather.core.models import Category, CollectionProfile, WorkloadInstanceHandle
from gather.pipeline.phases import PhaseContext
from gather.pipeline.tasks import CollectionTask, ExecTask

BOOTSTRAP = "localhost:9092"

COMMANDS = (
    ("topics", f"kafka-topics.sh --bootstrap-server {BOOTSTRAP} --describe"),
    ("consumer_groups", f"kafka-consumer-groups.sh --bootstrap-server {BOOTSTRAP} --describe --all-groups"),
    ("broker_api_versions", f"kafka-broker-api-versions.sh --bootstrap-server {BOOTSTRAP}"),
)


class KafkaDiagnostics:
    service_id = "kafka"

    def selector(self, profile: CollectionProfile) -> str:
        # No built-in default: the product label differs per installation.
        return profile.selector_for(self.service_id, profile.kafka_label)

    def build_tasks(self, ctx: PhaseContext, instances: List[WorkloadInstanceHandle]) -> List[CollectionTask]:
        broker = instances[0]
        return [
            ExecTask(
                instance=broker,
                command=("/bin/sh", "-c", script),
                category=Category.APPS,
                filename=f"kafka_{name}.log",
            )
            for name, script in COMMANDS
        ]
