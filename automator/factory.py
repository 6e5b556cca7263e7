"""
Engine selection - picks the driver implementation from configuration
"""

from typing import Any

from .driver import BrowserDriver
from .models import DriverConfiguration, DriverEngine
from .playwright_driver import PlaywrightAutomator
from .webdriver_driver import WebDriverAutomator

DRIVERS: dict[DriverEngine, type[BrowserDriver]] = {
    DriverEngine.PLAYWRIGHT: PlaywrightAutomator,
    DriverEngine.WEBDRIVER: WebDriverAutomator,
}


def create_driver(config: DriverConfiguration | None = None, **collaborators: Any) -> BrowserDriver:
    """
    Create a driver for ``config.engine``.

    Args:
        config: Driver configuration (defaults to headless Playwright chromium)
        **collaborators: Passed to the driver constructor (logger, output_manager,
                         environ, browser_resolver, clock, sleep, and engine
                         factories such as ``playwright_factory`` / ``webdriver_factory``)

    Note:
        The webdriver engine calls Selenium inline, so each call blocks the event
        loop until it returns (a slow ``navigate_to`` blocks up to
        ``navigation_timeout_ms``). Drivers of either engine sharing a loop with a
        webdriver driver do not make progress during those calls. Run webdriver
        drivers on separate loops or processes when they must work in parallel.

    Example:
        driver = create_driver(DriverConfiguration(engine="webdriver", browser="firefox"))
    """
    config = config or DriverConfiguration()
    return DRIVERS[config.engine](config, **collaborators)
