"""Service-specific diagnostics blocks (stateful services reachable only through exec).

Each block resolves its own pods; zero matches skips the block as a normal outcome.
"""

from .base import ServiceDiagnostics, service_phase
from .registry import get_default_services

__all__ = ["ServiceDiagnostics", "get_default_services", "service_phase"]
