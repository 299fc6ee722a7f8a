"""What differs between products, behind one small interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Dict, Optional, Tuple

from testingbot.client.options import RunOptions
from testingbot.core.invocation import InvocationState


class ProviderStrategy(ABC):
    """Product specific steps of the generic run pipeline.

    Subclasses set ``product`` (the API path segment and realtime event
    prefix) and ``options_key`` (where ``product_options`` go in the run
    request body).
    """

    product: str = ""
    options_key: Optional[str] = None

    def __init__(self, options: RunOptions) -> None:
        self.options = options

    def validate(self) -> None:
        """Reject bad input before any network call."""
        self.options.validate()

    @abstractmethod
    def build_capabilities(self, detected_platform: Optional[str]) -> Dict[str, Any]:
        """Capabilities of the requested device."""

    @abstractmethod
    def product_options(self) -> Optional[Dict[str, Any]]:
        """Product options for the request body, None when empty."""

    @property
    def shard_split(self) -> Optional[int]:
        return None

    @property
    def realtime_events(self) -> Tuple[str, str]:
        return f"{self.product}_data", f"{self.product}_error"

    def before_submit(self, invocation: InvocationState) -> None:
        """Hook for notices shown right before the runs are created."""

    @abstractmethod
    def bundle(self) -> AsyncContextManager[Tuple[str, str]]:
        """Async context manager yielding ``(path, content_type)`` to upload."""


@asynccontextmanager
async def existing_file(path: str, content_type: str) -> AsyncIterator[Tuple[str, str]]:
    """Bundle of a file the user already built; nothing to clean up."""
    yield path, content_type
