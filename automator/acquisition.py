"""
Environment-aware browser acquisition.

Decides, at driver start, which browser executable and launch arguments to use.
The decision is keyed only on sandbox markers in the environment: inside a
managed serverless sandbox only a serverless-built chromium can run, so there is
no fallback to a desktop binary there.
"""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from .exceptions import ServerlessBrowserUnavailableError
from .models import BrowserFamily, DriverConfiguration, LaunchPlan

SANDBOX_MARKERS = ("AWS_LAMBDA_FUNCTION_NAME", "AWS_EXECUTION_ENV")

CHROMIUM_EXECUTABLE_ENV = "PLAYWRIGHT_CHROMIUM_EXECUTABLE_PATH"
SERVERLESS_CHROMIUM_ENV = "SERVERLESS_CHROMIUM_PATH"
SERVERLESS_CHROMEDRIVER_ENV = "SERVERLESS_CHROMEDRIVER_PATH"

SERVERLESS_CHROMIUM_PATHS = (
    "/opt/chromium",
    "/opt/headless-chromium",
    "/opt/chrome/chrome",
    "/opt/chrome-linux/chrome",
)
SERVERLESS_CHROMEDRIVER_PATHS = ("/opt/chromedriver", "/opt/chromedriver/chromedriver")

# Launch arguments recommended for chromium in single-process sandboxes
SERVERLESS_CHROMIUM_ARGS = (
    "--allow-pdf-html-in-iframes",
    "--disable-background-networking",
    "--disable-background-timer-throttling",
    "--disable-breakpad",
    "--disable-component-update",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-setuid-sandbox",
    "--disable-software-rasterizer",
    "--no-first-run",
    "--no-sandbox",
    "--no-zygote",
    "--single-process",
    "--use-gl=swiftshader",
    "--headless=new",
)

_logger = logging.getLogger("automator.acquisition")


@dataclass(frozen=True)
class ServerlessBrowser:
    executable_path: str
    args: tuple[str, ...] = SERVERLESS_CHROMIUM_ARGS
    driver_path: str | None = None


class ServerlessBrowserResolver(Protocol):
    """Locates a serverless-optimised browser binary"""

    def resolve(self) -> ServerlessBrowser:
        """
        Returns:
            ServerlessBrowser

        Raises:
            Exception: Any error when no usable binary exists
        """
        ...


@dataclass
class LayerBrowserResolver:
    """
    Finds a chromium binary shipped in a serverless layer.

    Checks the SERVERLESS_CHROMIUM_PATH variable, then well-known layer paths.
    """

    environ: Mapping[str, str] = field(default_factory=lambda: os.environ)
    candidates: tuple[str, ...] = SERVERLESS_CHROMIUM_PATHS
    driver_candidates: tuple[str, ...] = SERVERLESS_CHROMEDRIVER_PATHS

    @staticmethod
    def _first_executable(paths: list[str]) -> str | None:
        for raw in paths:
            path = Path(raw)
            if path.is_file() and os.access(path, os.X_OK):
                return str(path)
        return None

    def resolve(self) -> ServerlessBrowser:
        explicit = self.environ.get(SERVERLESS_CHROMIUM_ENV, "").strip()
        paths = ([explicit] if explicit else []) + list(self.candidates)
        executable = self._first_executable(paths)
        if executable is None:
            raise FileNotFoundError("No serverless chromium binary found. Checked: " + ", ".join(paths))

        explicit_driver = self.environ.get(SERVERLESS_CHROMEDRIVER_ENV, "").strip()
        driver_paths = ([explicit_driver] if explicit_driver else []) + list(self.driver_candidates)
        return ServerlessBrowser(
            executable_path=executable, driver_path=self._first_executable(driver_paths)
        )


def is_serverless_sandbox(environ: Mapping[str, str] | None = None) -> bool:
    """True when a sandbox marker variable is set to a non-empty value"""
    env = os.environ if environ is None else environ
    return any(env.get(marker) for marker in SANDBOX_MARKERS)


def acquire_launch_plan(
    config: DriverConfiguration,
    environ: Mapping[str, str] | None = None,
    resolver: ServerlessBrowserResolver | None = None,
    logger=None,
) -> LaunchPlan:
    """
    Choose the executable and launch arguments for this environment.

    Args:
        config: Driver configuration (browser family, executable_path)
        environ: Environment mapping (defaults to os.environ)
        resolver: Serverless binary resolver (defaults to LayerBrowserResolver)

    Returns:
        LaunchPlan

    Raises:
        ServerlessBrowserUnavailableError: Sandbox detected but no serverless
            chromium is available, or the family cannot run in the sandbox
    """
    env = os.environ if environ is None else environ
    log = logger or _logger
    family = config.browser

    if is_serverless_sandbox(env):
        if not family.is_chromium_based:
            raise ServerlessBrowserUnavailableError(
                f"Serverless sandbox detected but browser '{family.value}' has no "
                "serverless build. Use a chromium-based browser."
            )
        resolver = resolver or LayerBrowserResolver(environ=env)
        try:
            serverless = resolver.resolve()
        except Exception as e:
            log.error(f"Serverless chromium not available: {e}")
            raise ServerlessBrowserUnavailableError(
                "Serverless sandbox detected but serverless chromium is not available. "
                f"Provide a chromium layer or set {SERVERLESS_CHROMIUM_ENV}. Cause: {e}"
            ) from e
        log.info(f"Using serverless chromium: {serverless.executable_path}")
        return LaunchPlan(
            source="serverless",
            executable_path=serverless.executable_path,
            driver_path=serverless.driver_path,
            args=list(serverless.args),
        )

    if config.executable_path:
        log.info(f"Using configured browser executable: {config.executable_path}")
        return LaunchPlan(source="configured", executable_path=config.executable_path)

    env_executable = env.get(CHROMIUM_EXECUTABLE_ENV, "").strip()
    if env_executable and family in (BrowserFamily.CHROMIUM, BrowserFamily.CHROME):
        log.info(f"Using custom chromium executable: {env_executable}")
        return LaunchPlan(source="environment", executable_path=env_executable)

    log.info("Using default browser installation")
    return LaunchPlan(source="default")
