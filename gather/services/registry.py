from __future__ import annotations

from typing import List

from gather.services.base import ServiceDiagnostics


def get_default_services() -> List[ServiceDiagnostics]:
    # Explicit composition; blocks run in this order.
    from gather.services.elasticsearch import ElasticsearchDiagnostics
    from gather.services.kafka import KafkaDiagnostics
    from gather.services.prometheus import PrometheusDiagnostics

    return [ElasticsearchDiagnostics(), KafkaDiagnostics(), PrometheusDiagnostics()]
