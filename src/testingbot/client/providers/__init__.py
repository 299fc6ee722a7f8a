"""Product strategies for the run pipeline."""

from testingbot.client.providers.base import ProviderStrategy
from testingbot.client.providers.espresso import EspressoProvider
from testingbot.client.providers.maestro import MaestroProvider
from testingbot.client.providers.xcuitest import XCUITestProvider

__all__ = [
    "EspressoProvider",
    "MaestroProvider",
    "ProviderStrategy",
    "XCUITestProvider",
]
