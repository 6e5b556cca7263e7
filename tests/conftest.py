"""
Pytest configuration and fixtures for automator tests
"""

import os

import pytest


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "requires_browser: mark test as requiring installed browsers (set AUTOMATOR_BROWSER_TESTS=1)",
    )


@pytest.fixture(autouse=True)
def skip_if_no_browser(request):
    """Automatically skip live-browser tests unless explicitly enabled"""
    marker = request.node.get_closest_marker("requires_browser")
    if marker and not os.getenv("AUTOMATOR_BROWSER_TESTS"):
        pytest.skip("Live browser tests disabled. Set AUTOMATOR_BROWSER_TESTS=1 to run them")


class FakeClock:
    """Monotonic clock whose sleep() advances time instantly and records delays"""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
