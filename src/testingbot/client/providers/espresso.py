"""Espresso: the instrumentation APK is uploaded as the test bundle."""

from __future__ import annotations

from typing import Any, AsyncContextManager, Dict, Optional, Tuple

from testingbot.client.options import EspressoOptions
from testingbot.client.providers.base import ProviderStrategy, existing_file
from testingbot.core.constants import ContentType, Product


class EspressoProvider(ProviderStrategy):
    product = Product.ESPRESSO
    options_key = "espressoOptions"

    def __init__(self, options: EspressoOptions) -> None:
        super().__init__(options)
        self.options: EspressoOptions = options

    def build_capabilities(self, detected_platform: Optional[str]) -> Dict[str, Any]:
        return self.options.capabilities(detected_platform)

    def product_options(self) -> Optional[Dict[str, Any]]:
        return self.options.espresso_options()

    def bundle(self) -> AsyncContextManager[Tuple[str, str]]:
        return existing_file(self.options.test_app, ContentType.APK)
