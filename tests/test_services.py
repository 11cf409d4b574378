from __future__ import annotations

import asyncio
import base64

import pytest

from gather.core.errors import ResolutionError
from gather.core.models import Category
from gather.pipeline.executor import run_phases
from gather.pipeline.phases import PhaseContext
from gather.pipeline.tasks import ExecTask
from gather.services import get_default_services, service_phase
from gather.services.elasticsearch import CREDENTIALS_SELECTOR, MASTER_SELECTOR, ElasticsearchDiagnostics
from gather.services.kafka import KafkaDiagnostics
from gather.services.prometheus import PrometheusDiagnostics
from gather.storage.local_store import StagingTree

from conftest import FIXED_NOW, FakeCluster, FakeNamespaceClient, FakeRunner

ES_LABELS = {"elasticsearch.k8s.elastic.co/node-master": "true"}


def _es_cluster(secret_data=None) -> FakeCluster:
    secrets = []
    if secret_data is not None:
        secrets.append({"name": "quickstart-es-elastic-user", "data": secret_data})
    ns = FakeNamespaceClient(
        "elastic",
        pods=[
            {"name": "es-master-0", "containers": ["elasticsearch", "exporter"], "labels": ES_LABELS},
            {"name": "es-master-1", "containers": ["elasticsearch"], "labels": ES_LABELS},
            {"name": "es-data-0", "containers": ["elasticsearch"]},
        ],
        secrets=secrets,
    )
    return FakeCluster({"elastic": ns})


def test_default_services_order() -> None:
    assert [s.service_id for s in get_default_services()] == ["elasticsearch", "kafka", "prometheus"]


def test_zero_matching_pods_yields_no_tasks_and_no_error(make_profile, two_namespace_cluster) -> None:
    ctx = PhaseContext(profile=make_profile(), cluster=two_namespace_cluster, runner=FakeRunner())
    phase = service_phase(ElasticsearchDiagnostics(), ctx)

    assert phase.name == "apps:elasticsearch"
    assert phase.build() == []
    # Gated before discovery: no credential lookup happens.
    assert two_namespace_cluster.namespace("ns-a").secret_calls == []
    assert two_namespace_cluster.namespace("ns-a").list_calls == [(MASTER_SELECTOR, "")]


def test_elasticsearch_tasks_use_first_master_and_secret(make_profile) -> None:
    cluster = _es_cluster({"elastic": base64.b64encode(b"s3cr3t pw").decode()})
    ctx = PhaseContext(profile=make_profile(context_namespace=["elastic"]), cluster=cluster, runner=FakeRunner())

    tasks = service_phase(ElasticsearchDiagnostics(), ctx).build()

    assert [t.filename for t in tasks] == [
        "elastic_search_health.json",
        "elastic_search_indices.json",
        "elastic_search_settings.json",
        "elastic_search_defaults_settings.json",
    ]
    assert all(isinstance(t, ExecTask) and t.category is Category.APPS for t in tasks)
    assert {t.instance.name for t in tasks} == {"es-master-0"}
    assert all(t.container is None for t in tasks)
    health = tasks[0]
    assert health.command[:2] == ("/bin/sh", "-c")
    assert "-u 'elastic:s3cr3t pw'" in health.command[2]
    assert "https://localhost:9200/_cluster/health?pretty" in health.command[2]
    assert "s3cr3t" not in health.describe()
    assert cluster.namespace("elastic").secret_calls == [CREDENTIALS_SELECTOR]


def test_elasticsearch_without_credentials_aborts_block(make_profile) -> None:
    ctx = PhaseContext(profile=make_profile(context_namespace=["elastic"]), cluster=_es_cluster(), runner=FakeRunner())
    with pytest.raises(ResolutionError, match="credentials"):
        service_phase(ElasticsearchDiagnostics(), ctx).build()


def test_elasticsearch_exec_runs_in_first_container(make_profile) -> None:
    cluster = _es_cluster({"elastic": base64.b64encode(b"pw").decode()})
    ctx = PhaseContext(profile=make_profile(context_namespace=["elastic"]), cluster=cluster, runner=FakeRunner())
    task = service_phase(ElasticsearchDiagnostics(), ctx).build()[0]

    out = task.invoke()

    assert out.stdout == b"exec es-master-0/elasticsearch\n"
    pod, container, _command = cluster.namespace("elastic").exec_calls[0]
    assert (pod, container) == ("es-master-0", "elasticsearch")


def test_service_namespace_hint_overrides_profile_namespaces(make_profile) -> None:
    cluster = _es_cluster({"elastic": base64.b64encode(b"pw").decode()})
    profile = make_profile(context_namespace=["ns-a"], service_namespaces={"elasticsearch": ["elastic"]})
    ctx = PhaseContext(profile=profile, cluster=cluster, runner=FakeRunner())

    tasks = service_phase(ElasticsearchDiagnostics(), ctx).build()

    assert len(tasks) == 4
    assert cluster.namespace("ns-a").list_calls == []


def test_kafka_disabled_without_label(make_profile, two_namespace_cluster) -> None:
    ctx = PhaseContext(profile=make_profile(), cluster=two_namespace_cluster, runner=FakeRunner())
    assert service_phase(KafkaDiagnostics(), ctx).build() == []
    assert two_namespace_cluster.namespace("ns-a").list_calls == []


def test_kafka_uses_configured_label(make_profile) -> None:
    ns = FakeNamespaceClient(
        "streaming", pods=[{"name": "kafka-0", "containers": ["kafka"], "labels": {"app": "kafka"}}]
    )
    profile = make_profile(context_namespace=["streaming"], non_exfo_kafka_product_kubernetes_label="app=kafka")
    ctx = PhaseContext(profile=profile, cluster=FakeCluster({"streaming": ns}), runner=FakeRunner())

    tasks = service_phase(KafkaDiagnostics(), ctx).build()

    assert [t.filename for t in tasks] == [
        "kafka_topics.log",
        "kafka_consumer_groups.log",
        "kafka_broker_api_versions.log",
    ]
    assert "kafka-topics.sh --bootstrap-server localhost:9092 --describe" in tasks[0].command[2]


def test_prometheus_targets_server_container_on_every_instance(make_profile) -> None:
    labels = {"app.kubernetes.io/name": "prometheus"}
    ns = FakeNamespaceClient(
        "monitoring",
        pods=[
            {"name": "prometheus-0", "containers": ["config-reloader", "prometheus"], "labels": labels},
            {"name": "prometheus-1", "containers": ["server"], "labels": labels},
        ],
    )
    profile = make_profile(context_namespace=["monitoring"])
    ctx = PhaseContext(profile=profile, cluster=FakeCluster({"monitoring": ns}), runner=FakeRunner())

    tasks = service_phase(PrometheusDiagnostics(), ctx).build()

    assert len(tasks) == 10
    assert {t.container for t in tasks if t.instance.name == "prometheus-0"} == {"prometheus"}
    assert {t.container for t in tasks if t.instance.name == "prometheus-1"} == {None}
    assert "prometheus_tsdb_monitoring_prometheus-0.json" in {t.filename for t in tasks}


def test_service_selector_override(make_profile) -> None:
    ns = FakeNamespaceClient("monitoring", pods=[{"name": "prom-0", "containers": ["p"], "labels": {"app": "prom"}}])
    profile = make_profile(context_namespace=["monitoring"], service_selectors={"prometheus": "app=prom"})
    ctx = PhaseContext(profile=profile, cluster=FakeCluster({"monitoring": ns}), runner=FakeRunner())
    assert len(service_phase(PrometheusDiagnostics(), ctx).build()) == 5


def test_service_listing_failure_aborts_only_that_block(make_profile, tmp_path) -> None:
    labels = {"app.kubernetes.io/name": "prometheus"}
    pod = {"name": "prom-0", "containers": ["prometheus"], "labels": labels}
    monitoring = FakeNamespaceClient("monitoring", pods=[pod])
    cluster = FakeCluster({"elastic": FakeNamespaceClient("elastic", fail_list=True), "monitoring": monitoring})
    profile = make_profile(
        context_namespace=["monitoring"],
        service_namespaces={"elasticsearch": ["elastic"]},
    )
    ctx = PhaseContext(profile=profile, cluster=cluster, runner=FakeRunner())
    phases = [service_phase(ElasticsearchDiagnostics(), ctx), service_phase(PrometheusDiagnostics(), ctx)]

    reports = asyncio.run(run_phases(phases, StagingTree.create(str(tmp_path), "ctx", FIXED_NOW)))

    assert reports[0].name == "apps:elasticsearch"
    assert "elastic" in reports[0].error
    assert reports[0].results == []
    assert reports[1].error is None
    assert reports[1].succeeded == 5
