"""Maestro: flows are resolved, zipped and uploaded as the test bundle."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Tuple

import structlog

from testingbot.client.maestro import (
    ArchiveBuilder,
    FlowDependencyResolver,
    ResolvedFlows,
)
from testingbot.client.options import MaestroOptions
from testingbot.client.providers.base import ProviderStrategy
from testingbot.core.constants import ContentType, Product
from testingbot.core.exceptions import ValidationError
from testingbot.core.invocation import InvocationState

logger = structlog.get_logger(__name__)


class MaestroProvider(ProviderStrategy):
    product = Product.MAESTRO
    options_key = "maestroOptions"

    def __init__(
        self,
        options: MaestroOptions,
        resolver: Optional[FlowDependencyResolver] = None,
        builder: Optional[ArchiveBuilder] = None,
    ) -> None:
        super().__init__(options)
        self.options: MaestroOptions = options
        self.resolver = resolver or FlowDependencyResolver()
        self.builder = builder or ArchiveBuilder()
        self.resolved: Optional[ResolvedFlows] = None

    def validate(self) -> None:
        self.options.validate()
        self.resolved = self.resolver.resolve(self.options.flows)

    def build_capabilities(self, detected_platform: Optional[str]) -> Dict[str, Any]:
        return self.options.capabilities(detected_platform)

    def product_options(self) -> Optional[Dict[str, Any]]:
        return self.options.maestro_options()

    @property
    def shard_split(self) -> Optional[int]:
        return self.options.shard_split

    def before_submit(self, invocation: InvocationState) -> None:
        flow_count = self.resolved.flow_count if self.resolved else 0
        invocation.show_real_device_tip(
            real_device=self.options.real_device,
            device=self.options.device,
            flow_count=flow_count,
            shard_split=self.options.shard_split,
        )

    @asynccontextmanager
    async def bundle(self) -> AsyncIterator[Tuple[str, str]]:
        if self.resolved is None:
            raise ValidationError("Flows must be validated before bundling")

        if self.resolved.archive:
            yield self.resolved.archive, ContentType.ZIP
            return

        logger.info("Bundling flows", files=len(self.resolved.files))
        with self.builder.bundle(self.resolved.files, self.resolved.base_dir) as path:
            yield path, ContentType.ZIP
