"""Elasticsearch (ECK) cluster diagnostics, queried over the master's local HTTPS port."""

from __future__ import annotations

import base64
import binascii
import logging
import shlex
from typing import List, Optional

from gather.core.errors import ResolutionError
from gather.core.models import Category, CollectionProfile, WorkloadInstanceHandle
from gather.pipeline.phases import PhaseContext
from gather.pipeline.tasks import CollectionTask, ExecTask
from gather.providers.k8s_provider import namespace_clients

logger = logging.getLogger(__name__)

MASTER_SELECTOR = "elasticsearch.k8s.elastic.co/node-master=true"
CREDENTIALS_SELECTOR = "eck.k8s.elastic.co/owner-kind=Elasticsearch,eck.k8s.elastic.co/credentials=true"
ELASTIC_USER = "elastic"
BASE_URL = "https://localhost:9200"

# (output name, API path)
ENDPOINTS = (
    ("health", "_cluster/health?pretty"),
    (
        "indices",
        "_cat/indices?h=health,status,index,id,p,r,dc,dd,ss,creation.date.string,&v&s=creation.date:desc",
    ),
    ("settings", "_cluster/settings?pretty"),
    ("defaults_settings", "_cluster/settings?include_defaults=true&pretty"),
)


def _decode_secret_value(raw: str) -> Optional[str]:
    try:
        return base64.b64decode(raw, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None


class ElasticsearchDiagnostics:
    service_id = "elasticsearch"

    def selector(self, profile: CollectionProfile) -> str:
        return profile.selector_for(self.service_id, MASTER_SELECTOR)

    def read_password(self, ctx: PhaseContext) -> str:
        """Password of the built-in `elastic` user, from the ECK credentials secret."""
        namespaces = ctx.profile.namespaces_for(self.service_id)
        for ns_client in namespace_clients(ctx.cluster, namespaces):
            for secret in ns_client.list_secrets(label_selector=CREDENTIALS_SELECTOR):
                raw = (secret.get("data") or {}).get(ELASTIC_USER)
                if not raw:
                    continue
                password = _decode_secret_value(raw)
                if password is None:
                    name = secret.get("name")
                    logger.warning("Secret %s/%s holds an undecodable %r key", ns_client.namespace, name, ELASTIC_USER)
                    continue
                return password
        raise ResolutionError(
            f"no Elasticsearch credentials secret ({CREDENTIALS_SELECTOR}) found in {', '.join(namespaces)}"
        )

    def build_tasks(self, ctx: PhaseContext, instances: List[WorkloadInstanceHandle]) -> List[CollectionTask]:
        password = self.read_password(ctx)
        master = instances[0]
        tasks: List[CollectionTask] = []
        for name, path in ENDPOINTS:
            url = f"{BASE_URL}/{path}"
            script = f"curl -s -k -u {shlex.quote(f'{ELASTIC_USER}:{password}')} -X GET {shlex.quote(url)}"
            tasks.append(
                ExecTask(
                    instance=master,
                    command=("/bin/sh", "-c", script),
                    category=Category.APPS,
                    filename=f"elastic_search_{name}.json",
                    label=f"curl {url}",
                )
            )
        return tasks
