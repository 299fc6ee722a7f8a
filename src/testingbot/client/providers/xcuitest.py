"""XCUITest: the zipped test runner is uploaded as the test bundle."""

from __future__ import annotations

from typing import Any, AsyncContextManager, Dict, Optional, Tuple

from testingbot.client.options import XCUITestOptions
from testingbot.client.providers.base import ProviderStrategy, existing_file
from testingbot.core.constants import ContentType, Product


class XCUITestProvider(ProviderStrategy):
    product = Product.XCUITEST
    options_key = "options"

    def __init__(self, options: XCUITestOptions) -> None:
        super().__init__(options)
        self.options: XCUITestOptions = options

    def build_capabilities(self, detected_platform: Optional[str]) -> Dict[str, Any]:
        return self.options.capabilities(detected_platform)

    def product_options(self) -> Optional[Dict[str, Any]]:
        return self.options.xcuitest_options()

    def bundle(self) -> AsyncContextManager[Tuple[str, str]]:
        test_app = self.options.test_app
        return existing_file(test_app, ContentType.for_app(test_app))
