"""
Driver contract shared by the WebDriver and Playwright implementations.

Lifecycle: UNINITIALIZED -> STARTED -> STOPPED. ``start()`` on a started driver
is a no-op (warns), ``quit()`` on a driver that is not started is a no-op, and a
stopped driver cannot be restarted - construct a new instance instead.

A driver instance is not safe for concurrent use: issue one operation at a time
per instance. Separate instances share nothing and may run in parallel.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from .acquisition import ServerlessBrowserResolver, acquire_launch_plan
from .exceptions import (
    AutomationError,
    CaptureFailedError,
    ElementNotFoundError,
    NotStartedError,
    StartupFailedError,
)
from .models import (
    ActionResult,
    DriverConfiguration,
    DriverEngine,
    DriverState,
    LaunchPlan,
    NavigationResult,
    OutputDirectoryConfig,
    WaitCondition,
)
from .output import OutputResourceManager
from .waits import Clock, Sleep, retry


class DriverLogger(Protocol):
    """Protocol for an injectable logger (stdlib loggers satisfy it)"""

    def debug(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


@dataclass
class DriverSession:
    """Runtime state owned by exactly one driver instance"""

    state: DriverState = DriverState.UNINITIALIZED
    current_url: str | None = None
    launch_plan: LaunchPlan | None = None


class BrowserDriver(ABC):
    """
    Abstract browser automation driver.

    Subclasses implement ``_launch``/``_release`` plus the engine-specific
    operations; the base class owns the state machine, screenshot writing,
    retry discipline for safe interactions, and output directories.

    Example:
        async with create_driver(DriverConfiguration(engine="webdriver")) as driver:
            result = await driver.navigate_to("https://example.com")
            heading = await driver.get_text("h1")
    """

    engine: DriverEngine
    supports_video_recording: bool = False

    def __init__(
        self,
        config: DriverConfiguration | None = None,
        *,
        logger: DriverLogger | None = None,
        output_manager: OutputResourceManager | None = None,
        environ: Mapping[str, str] | None = None,
        browser_resolver: ServerlessBrowserResolver | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        if config is None:
            config = DriverConfiguration(engine=self.engine)
        elif config.engine != self.engine:
            config = config.with_overrides(engine=self.engine)
        self.config = config
        self.logger = logger or logging.getLogger(f"automator.{self.engine.value}")
        self.output = output_manager or OutputResourceManager(
            config.output_path, config.downloads_path, logger=self.logger
        )
        self._environ = environ
        self._browser_resolver = browser_resolver
        self._clock = clock
        self._sleep = sleep
        self.session = self._new_session()

    def _new_session(self) -> DriverSession:
        return DriverSession()

    # ---- lifecycle -------------------------------------------------------

    @property
    def state(self) -> DriverState:
        return self.session.state

    def is_started(self) -> bool:
        return self.session.state == DriverState.STARTED

    async def start(self) -> None:
        """
        Launch the browser and open a page.

        Raises:
            ServerlessBrowserUnavailableError: Sandbox detected without a usable binary
            StartupFailedError: Engine or binary could not be launched, or the
                driver was already quit
        """
        if self.session.state == DriverState.STARTED:
            self.logger.warning(f"{self.engine.value} driver already started; ignoring start()")
            return
        if self.session.state == DriverState.STOPPED:
            raise StartupFailedError(
                "Driver has been quit and cannot be restarted. Create a new driver instance."
            )

        plan = acquire_launch_plan(
            self.config, self._environ, self._browser_resolver, logger=self.logger
        )
        self.logger.info(
            f"Starting {self.engine.value} driver "
            f"(browser={self.config.browser.value}, headless={self.config.headless}, "
            f"executable={plan.executable_path or 'default'})"
        )
        try:
            await self._launch(plan)
        except Exception as e:
            self.logger.error(f"Failed to start {self.engine.value} driver: {e}")
            await self._release_after_failed_start()
            if isinstance(e, AutomationError):
                raise
            raise StartupFailedError(
                f"Failed to start {self.engine.value} driver ({self.config.browser.value}): {e}"
            ) from e

        self.session.launch_plan = plan
        self.session.state = DriverState.STARTED
        self.logger.info(f"{self.engine.value} driver started")

    async def _release_after_failed_start(self) -> None:
        try:
            await self._release()
        except Exception as e:
            self.logger.warning(f"Cleanup after failed start also failed: {e}")
        self.session = self._new_session()

    async def quit(self, raise_on_error: bool = False) -> None:
        """
        Release the page/context first, then the browser process.

        Teardown failures are logged and not re-raised unless ``raise_on_error``.
        """
        if self.session.state != DriverState.STARTED:
            self.logger.debug(f"quit() on {self.session.state.value} driver; nothing to do")
            return
        self.logger.info(f"Stopping {self.engine.value} driver")
        try:
            await self._release()
        except Exception as e:
            self.logger.error(f"Error while stopping {self.engine.value} driver: {e}")
            if raise_on_error:
                raise
        finally:
            self.session.state = DriverState.STOPPED
            self.session.current_url = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.quit()

    def _ensure_started(self, operation: str) -> None:
        if self.session.state != DriverState.STARTED:
            raise NotStartedError(operation)

    def _timeout(self, timeout_ms: int | None) -> int:
        return self.config.timeout_ms if timeout_ms is None else timeout_ms

    @abstractmethod
    async def _launch(self, plan: LaunchPlan) -> None:
        """Create engine handles according to the launch plan"""

    @abstractmethod
    async def _release(self) -> None:
        """Close engine handles (context before process); safe on partial state"""

    # ---- navigation ------------------------------------------------------

    @abstractmethod
    async def navigate_to(self, url: str) -> NavigationResult:
        """
        Load ``url`` and wait for the configured readiness signal.

        Never retried automatically.

        Raises:
            NavigationFailedError: Network error or readiness timeout
        """

    @abstractmethod
    async def get_title(self) -> str: ...

    @abstractmethod
    async def get_current_url(self) -> str: ...

    @abstractmethod
    async def get_page_source(self) -> str: ...

    @abstractmethod
    async def go_back(self) -> None: ...

    @abstractmethod
    async def go_forward(self) -> None: ...

    @abstractmethod
    async def refresh(self) -> None: ...

    # ---- locating and waiting -------------------------------------------

    @abstractmethod
    async def _wait_for(self, selector: str, condition: WaitCondition, timeout_ms: int) -> Any:
        """
        Wait until ``selector`` reaches ``condition``.

        Returns:
            Engine element handle (None for INVISIBLE when the element is gone)

        Raises:
            ElementNotFoundError: Condition not met within ``timeout_ms``
        """

    async def find_element(self, selector: str, timeout_ms: int | None = None) -> Any:
        """
        Locate one element, waiting until it is present.

        Raises:
            ElementNotFoundError: No match within the timeout
        """
        self._ensure_started("find_element")
        return await self._wait_for(selector, WaitCondition.PRESENT, self._timeout(timeout_ms))

    @abstractmethod
    async def find_elements(self, selector: str) -> list[Any]:
        """Locate all matches; an absent element yields an empty list"""

    async def _wait_result(
        self, operation: str, selector: str, condition: WaitCondition, timeout_ms: int | None
    ) -> ActionResult:
        self._ensure_started(operation)
        await self._wait_for(selector, condition, self._timeout(timeout_ms))
        return ActionResult(success=True, selector=selector, action=operation)

    async def wait_for_element(self, selector: str, timeout_ms: int | None = None) -> ActionResult:
        return await self._wait_result("wait_for_element", selector, WaitCondition.PRESENT, timeout_ms)

    async def wait_for_visible(self, selector: str, timeout_ms: int | None = None) -> ActionResult:
        return await self._wait_result("wait_for_visible", selector, WaitCondition.VISIBLE, timeout_ms)

    async def wait_for_clickable(self, selector: str, timeout_ms: int | None = None) -> ActionResult:
        return await self._wait_result(
            "wait_for_clickable", selector, WaitCondition.CLICKABLE, timeout_ms
        )

    async def wait_for_invisible(self, selector: str, timeout_ms: int | None = None) -> ActionResult:
        return await self._wait_result(
            "wait_for_invisible", selector, WaitCondition.INVISIBLE, timeout_ms
        )

    async def element_exists(self, selector: str, timeout_ms: int | None = None) -> bool:
        """
        True when ``selector`` matches within ``timeout_ms``.

        With no timeout this is a single immediate check.
        """
        self._ensure_started("element_exists")
        if not timeout_ms:
            return len(await self.find_elements(selector)) > 0
        try:
            await self._wait_for(selector, WaitCondition.PRESENT, timeout_ms)
            return True
        except ElementNotFoundError:
            return False

    @abstractmethod
    async def is_element_visible(self, selector: str) -> bool: ...

    @abstractmethod
    async def scroll_to_element(self, selector: str) -> None: ...

    # ---- interaction -----------------------------------------------------

    @abstractmethod
    async def click(self, selector: str, timeout_ms: int | None = None) -> ActionResult: ...

    @abstractmethod
    async def send_keys(
        self, selector: str, text: str, timeout_ms: int | None = None
    ) -> ActionResult: ...

    @abstractmethod
    async def clear_text(self, selector: str, timeout_ms: int | None = None) -> ActionResult: ...

    @abstractmethod
    async def _click_attempt(self, selector: str, timeout_ms: int) -> None:
        """One click attempt: re-locate, wait clickable, scroll into view, click"""

    @abstractmethod
    async def _send_keys_attempt(
        self, selector: str, text: str, clear_first: bool, timeout_ms: int
    ) -> None:
        """One typing attempt; raises when the field value does not verify"""

    async def safe_click(
        self,
        selector: str,
        attempts: int | None = None,
        delay_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> ActionResult:
        """
        Click with bounded retries.

        Each attempt re-locates the element and waits up to ``timeout_ms``
        (default ``attempt_timeout_ms``) for it to become clickable.

        Raises:
            InteractionFailedError: All attempts failed
        """
        self._ensure_started("safe_click")
        total = attempts or self.config.retry_attempts
        per_attempt = timeout_ms or self.config.attempt_timeout_ms
        used = 0

        async def attempt(number: int) -> None:
            nonlocal used
            used = number
            self.logger.debug(f"Click attempt {number}/{total}: {selector}")
            await self._click_attempt(selector, per_attempt)

        await retry(
            attempt,
            attempts=total,
            delay_ms=self.config.retry_delay_ms if delay_ms is None else delay_ms,
            action="click",
            target=selector,
            logger=self.logger,
            sleep=self._sleep,
        )
        self.logger.info(f"Clicked {selector}")
        return ActionResult(success=True, selector=selector, action="click", attempts=used)

    async def safe_send_keys(
        self,
        selector: str,
        text: str,
        clear_first: bool = True,
        attempts: int | None = None,
        delay_ms: int | None = None,
        timeout_ms: int | None = None,
    ) -> ActionResult:
        """
        Type into a field with bounded retries, verifying the resulting value.

        Raises:
            InteractionFailedError: All attempts failed
        """
        self._ensure_started("safe_send_keys")
        total = attempts or self.config.retry_attempts
        per_attempt = timeout_ms or self.config.attempt_timeout_ms
        used = 0

        async def attempt(number: int) -> None:
            nonlocal used
            used = number
            self.logger.debug(f"Send keys attempt {number}/{total}: {selector}")
            await self._send_keys_attempt(selector, text, clear_first, per_attempt)

        await retry(
            attempt,
            attempts=total,
            delay_ms=self.config.retry_delay_ms if delay_ms is None else delay_ms,
            action="send keys to",
            target=selector,
            logger=self.logger,
            sleep=self._sleep,
        )
        self.logger.info(f"Typed into {selector}")
        return ActionResult(
            success=True, selector=selector, action="send_keys", attempts=used, value=text
        )

    # ---- extraction ------------------------------------------------------

    @abstractmethod
    async def get_text(self, selector: str, timeout_ms: int | None = None) -> str:
        """Text of the first match (single attempt, no retry)"""

    @abstractmethod
    async def get_attribute(
        self, selector: str, name: str, timeout_ms: int | None = None
    ) -> str | None: ...

    @abstractmethod
    async def execute_script(self, script: str, *args: Any) -> Any:
        """
        Run ``script`` in the page.

        Raises:
            ScriptExecutionFailedError: The script threw; the engine error is chained
        """

    @abstractmethod
    async def evaluate(self, function_source: str, arg: Any = None) -> Any:
        """
        Call a JavaScript function expression with one JSON-serialisable argument.

        Example:
            count = await driver.evaluate("(sel) => document.querySelectorAll(sel).length", "a")
        """

    # ---- capture ---------------------------------------------------------

    @abstractmethod
    async def _capture_png(self, full_page: bool) -> bytes: ...

    async def take_screenshot(
        self,
        filename: str | None = None,
        include_timestamp: bool = True,
        base_directory: str | Path | None = None,
        sub_directory: str | None = None,
        full_page: bool | None = None,
    ) -> bytes | str:
        """
        Capture the page.

        Args:
            filename: When omitted the PNG bytes are returned instead of a file
            include_timestamp: Insert a ``_YYYY-MM-DD_HH-MM-SS`` suffix
            base_directory: Override the configured output path for this call
            sub_directory: Override the screenshots sub directory for this call
            full_page: Override ``full_page_screenshots``

        Returns:
            PNG bytes, or the absolute path of the written file

        Raises:
            CaptureFailedError: Capture or write failed
        """
        self._ensure_started("take_screenshot")
        whole_page = self.config.full_page_screenshots if full_page is None else full_page
        try:
            data = await self._capture_png(whole_page)
        except Exception as e:
            raise CaptureFailedError(f"Failed to capture screenshot: {e}") from e

        if filename is None:
            return data

        path = self.output.screenshot_path(
            filename, include_timestamp, base_directory, sub_directory
        )
        try:
            path.write_bytes(data)
        except OSError as e:
            raise CaptureFailedError(f"Failed to write screenshot {path}: {e}") from e
        if not path.is_file():
            raise CaptureFailedError(f"Screenshot was not written: {path}")
        self.logger.info(f"Screenshot saved: {path}")
        return str(path)

    # ---- misc ------------------------------------------------------------

    async def wait(self, ms: int) -> None:
        """Sleep for ``ms`` milliseconds"""
        await self._sleep(ms / 1000)

    def get_options(self) -> DriverConfiguration:
        return self.config

    @abstractmethod
    async def get_browser_info(self) -> dict[str, Any]: ...

    def get_output_directory_config(self) -> OutputDirectoryConfig:
        return self.output.directory_config()

    def get_download_directory(self, path: str | Path | None = None, create: bool = True) -> str:
        return str(self.output.downloads_dir(path, create))
