"""Maestro flow discovery and bundling."""

from testingbot.client.maestro.archive import ArchiveBuilder
from testingbot.client.maestro.flow_resolver import (
    FlowDependencyResolver,
    ResolvedFlows,
    looks_like_path,
)

__all__ = [
    "ArchiveBuilder",
    "FlowDependencyResolver",
    "ResolvedFlows",
    "looks_like_path",
]
