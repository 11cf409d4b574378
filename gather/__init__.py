"""Cluster diagnostics gatherer: collects workload, infra, helm and service diagnostics into one bundle."""
