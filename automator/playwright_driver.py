"""
DevTools-protocol driver backed by Playwright's async API.

Playwright auto-waits and retries actions until its own timeout, so ``click`` and
``send_keys`` are single native calls here. Native selector prefixes (``role=``,
``label=``, ``placeholder=``, ``data-testid=``, ``text=``) go straight to
Playwright's selector engines.
"""

import shutil
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from .driver import BrowserDriver, DriverSession
from .exceptions import (
    ElementNotFoundError,
    InteractionFailedError,
    NavigationFailedError,
    ScriptExecutionFailedError,
)
from .models import (
    ActionResult,
    BrowserFamily,
    DriverEngine,
    LaunchPlan,
    NavigationResult,
    WaitCondition,
)
from .selector_resolver import LocatorKind, resolve_selector
from .waits import await_condition

# Playwright wait_for() state for each wait condition
WAIT_STATES: dict[WaitCondition, str] = {
    WaitCondition.PRESENT: "attached",
    WaitCondition.VISIBLE: "visible",
    WaitCondition.CLICKABLE: "visible",
    WaitCondition.INVISIBLE: "hidden",
}

CHROMIUM_ARGS = ("--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu")

# Selenium-style script body: ``return`` statements and ``arguments[i]``
SCRIPT_WRAPPER = "(args) => {{ const fn = function() {{ {script}\n}}; return fn.apply(null, args); }}"


@dataclass
class PlaywrightSession(DriverSession):
    playwright: Any = None
    browser: Any = None
    context: Any = None
    page: Any = None


class PlaywrightAutomator(BrowserDriver):
    """
    Driver over Playwright (chromium, chrome, edge, firefox, webkit).

    Supports video recording: with ``record_video=True`` the recording is
    finalised when the context closes during ``quit()``.

    Example:
        async with PlaywrightAutomator(DriverConfiguration(record_video=True)) as driver:
            await driver.navigate_to("https://example.com")
            await driver.click("role=link")
        print(driver.video_path)
    """

    engine = DriverEngine.PLAYWRIGHT
    supports_video_recording = True

    def __init__(self, config=None, *, playwright_factory: Callable[[], Any] | None = None, **kwargs):
        super().__init__(config, **kwargs)
        self._playwright_factory = playwright_factory or async_playwright
        self._video_path: str | None = None
        self._video_target: str | Path | None = None

    def _new_session(self) -> PlaywrightSession:
        return PlaywrightSession()

    @property
    def page(self) -> Any:
        self._ensure_started("page")
        return self.session.page

    @property
    def context(self) -> Any:
        self._ensure_started("context")
        return self.session.context

    @property
    def browser(self) -> Any:
        self._ensure_started("browser")
        return self.session.browser

    @property
    def video_path(self) -> str | None:
        """Path of the finalised recording (available after quit)"""
        return self._video_path

    # ---- lifecycle -------------------------------------------------------

    def _launch_options(self, plan: LaunchPlan) -> dict[str, Any]:
        config = self.config
        family = config.browser
        args = list(plan.args)
        if family.is_chromium_based:
            args += list(CHROMIUM_ARGS)
        args += list(config.extra_args)

        options: dict[str, Any] = {
            "headless": config.headless,
            "slow_mo": config.slow_mo_ms,
            "args": list(dict.fromkeys(args)),
            "downloads_path": str(self.output.downloads_dir()),
        }
        if plan.executable_path:
            options["executable_path"] = plan.executable_path
        elif family == BrowserFamily.CHROME:
            options["channel"] = "chrome"
        elif family == BrowserFamily.EDGE:
            options["channel"] = "msedge"
        return options

    def _context_options(self) -> dict[str, Any]:
        config = self.config
        options: dict[str, Any] = {
            "viewport": config.viewport.to_playwright_dict(),
            "ignore_https_errors": config.accept_insecure_certs,
            "java_script_enabled": not config.disable_javascript,
            "accept_downloads": True,
        }
        if config.user_agent:
            options["user_agent"] = config.user_agent
        if config.record_video:
            video_dir = self.output.videos_dir()
            options["record_video_dir"] = str(video_dir)
            options["record_video_size"] = config.viewport.to_playwright_dict()
            self.logger.info(f"Recording video to: {video_dir}")
        return options

    def _browser_type(self, playwright: Any) -> Any:
        family = self.config.browser
        if family == BrowserFamily.FIREFOX:
            return playwright.firefox
        if family == BrowserFamily.WEBKIT:
            return playwright.webkit
        return playwright.chromium

    @staticmethod
    async def _block_images(route: Any) -> None:
        if route.request.resource_type == "image":
            await route.abort()
        else:
            await route.continue_()

    async def _launch(self, plan: LaunchPlan) -> None:
        session = self.session
        self._video_path = None
        session.playwright = await self._playwright_factory().start()
        session.browser = await self._browser_type(session.playwright).launch(
            **self._launch_options(plan)
        )
        session.context = await session.browser.new_context(**self._context_options())
        session.context.set_default_timeout(self.config.timeout_ms)
        session.context.set_default_navigation_timeout(self.config.navigation_timeout_ms)
        if self.config.disable_images:
            await session.context.route("**/*", self._block_images)
        session.page = await session.context.new_page()

    async def quit(
        self, raise_on_error: bool = False, *, video_output_path: str | Path | None = None
    ) -> str | None:
        """
        Close context, browser and Playwright, in that order.

        Args:
            raise_on_error: Re-raise the first teardown failure after cleanup
            video_output_path: Move the finalised recording here (relative paths
                               resolve against the project root)

        Returns:
            Path to the video file if recording was enabled, None otherwise
        """
        self._video_target = video_output_path
        await super().quit(raise_on_error=raise_on_error)
        return self._video_path

    async def _release(self) -> None:
        session = self.session
        if self.config.record_video and session.page is not None and session.page.video:
            try:
                # Known before close, written in full once the context closes
                self._video_path = await session.page.video.path()
            except PlaywrightError as e:
                self.logger.warning(f"Could not resolve video path: {e}")

        first_error: BaseException | None = None
        session.page = None
        for name in ("context", "browser"):
            handle = getattr(session, name)
            setattr(session, name, None)
            if handle is None:
                continue
            try:
                await handle.close()
            except Exception as e:
                self.logger.warning(f"Failed to close {name}: {e}")
                first_error = first_error or e

        playwright, session.playwright = session.playwright, None
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as e:
                self.logger.warning(f"Failed to stop playwright: {e}")
                first_error = first_error or e

        self._move_video()
        if first_error is not None:
            raise first_error

    def _move_video(self) -> None:
        if not self._video_path or not self._video_target:
            return
        source = Path(self._video_path)
        if not source.exists():
            self.logger.warning(f"Video file missing, not moved: {source}")
            return
        target = self.output.resolve(self._video_target)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(source), str(target))
            self._video_path = str(target)
            self.logger.info(f"Video saved: {target}")
        except OSError as e:
            self.logger.warning(f"Failed to move video file: {e}")

    async def get_video_path(self) -> str | None:
        """Path the current recording is being written to, or None without recording"""
        self._ensure_started("get_video_path")
        page = self.session.page
        if not self.config.record_video or not page.video:
            return None
        return await page.video.path()

    # ---- navigation ------------------------------------------------------

    async def navigate_to(self, url: str) -> NavigationResult:
        self._ensure_started("navigate_to")
        self.logger.info(f"Navigating to: {url}")
        page = self.session.page
        timeout = self.config.navigation_timeout_ms
        try:
            response = await page.goto(url, wait_until=self.config.page_ready_state, timeout=timeout)
        except PlaywrightTimeoutError as e:
            self.logger.error(f"Navigation timed out: {url}")
            raise NavigationFailedError(url, f"timed out after {timeout}ms", timed_out=True) from e
        except PlaywrightError as e:
            self.logger.error(f"Navigation failed: {url}: {e.message}")
            raise NavigationFailedError(url, e.message) from e

        self.session.current_url = page.url
        self.logger.info("Navigation completed successfully")
        return NavigationResult(
            url=page.url,
            title=await page.title(),
            success=response.ok if response is not None else True,
            status=response.status if response is not None else None,
        )

    async def get_title(self) -> str:
        self._ensure_started("get_title")
        return await self.session.page.title()

    async def get_current_url(self) -> str:
        self._ensure_started("get_current_url")
        self.session.current_url = self.session.page.url
        return self.session.current_url

    async def get_page_source(self) -> str:
        self._ensure_started("get_page_source")
        return await self.session.page.content()

    async def _history(self, operation: str, method: str) -> None:
        self._ensure_started(operation)
        step = getattr(self.session.page, method)
        try:
            await step(wait_until=self.config.page_ready_state, timeout=self.config.navigation_timeout_ms)
        except PlaywrightError as e:
            url = self.session.current_url or "current page"
            raise NavigationFailedError(
                url, f"{operation} failed: {e.message}", timed_out=isinstance(e, PlaywrightTimeoutError)
            ) from e
        self.session.current_url = self.session.page.url
        self.logger.info(f"{operation}: {self.session.current_url}")

    async def go_back(self) -> None:
        await self._history("go_back", "go_back")

    async def go_forward(self) -> None:
        await self._history("go_forward", "go_forward")

    async def refresh(self) -> None:
        await self._history("refresh", "reload")

    # ---- locating --------------------------------------------------------

    def _locator(self, selector: str) -> Any:
        page = self.session.page
        descriptor = resolve_selector(selector, native=True)
        if descriptor.kind == LocatorKind.ENGINE_NATIVE:
            value = descriptor.value.strip("\"'")
            native = descriptor.attribute
            if native == "role":
                # role=button[name="Save"] uses the role selector engine directly
                return page.locator(descriptor.raw) if "[" in value else page.get_by_role(value)
            if native == "label":
                return page.get_by_label(value)
            if native == "placeholder":
                return page.get_by_placeholder(value)
            if native == "data-testid":
                return page.get_by_test_id(value)
            # text="Sign in" is exact, text=Sign is a substring match
            return page.get_by_text(value, exact=value != descriptor.value)
        if descriptor.is_xpath:
            return page.locator(f"xpath={descriptor.value}")
        return page.locator(descriptor.to_css())

    async def _wait_for(self, selector: str, condition: WaitCondition, timeout_ms: int) -> Any:
        locator = self._locator(selector).first
        started = self._clock()
        try:
            await locator.wait_for(state=WAIT_STATES[condition], timeout=timeout_ms)
        except PlaywrightError as e:
            raise ElementNotFoundError(
                selector, timeout_ms=timeout_ms, condition=condition.value, last_error=e
            ) from e

        if condition == WaitCondition.INVISIBLE:
            return None
        if condition == WaitCondition.CLICKABLE:
            # wait_for() has no "enabled" state
            remaining = max(1, timeout_ms - int((self._clock() - started) * 1000))
            return await await_condition(
                lambda: locator,
                condition,
                remaining,
                check=lambda handle, _: handle.is_enabled(),
                poll_interval_ms=self.config.poll_interval_ms,
                description=selector,
                clock=self._clock,
                sleep=self._sleep,
            )
        return locator

    async def find_elements(self, selector: str) -> list[Any]:
        self._ensure_started("find_elements")
        locator = self._locator(selector)
        try:
            return await locator.all()
        except PlaywrightError as e:
            self.logger.warning(f"Elements not found: {selector}: {e.message}")
            return []

    async def is_element_visible(self, selector: str) -> bool:
        self._ensure_started("is_element_visible")
        try:
            return await self._locator(selector).first.is_visible()
        except PlaywrightError:
            return False

    async def scroll_to_element(self, selector: str) -> None:
        self._ensure_started("scroll_to_element")
        locator = await self._wait_for(selector, WaitCondition.PRESENT, self.config.attempt_timeout_ms)
        try:
            await locator.scroll_into_view_if_needed(timeout=self.config.attempt_timeout_ms)
        except PlaywrightError as e:
            raise InteractionFailedError("scroll to", selector, 1, e) from e

    # ---- interaction -----------------------------------------------------

    async def _action_failed(
        self, action: str, selector: str, locator: Any, error: PlaywrightError, timeout_ms: int
    ) -> Exception:
        self.logger.error(f"Failed to {action} {selector}: {error.message}")
        if isinstance(error, PlaywrightTimeoutError):
            try:
                missing = await locator.count() == 0
            except PlaywrightError:
                missing = False
            if missing:
                return ElementNotFoundError(selector, timeout_ms=timeout_ms, last_error=error)
        return InteractionFailedError(action, selector, 1, error)

    async def click(self, selector: str, timeout_ms: int | None = None) -> ActionResult:
        self._ensure_started("click")
        timeout = self._timeout(timeout_ms)
        locator = self._locator(selector).first
        try:
            await locator.click(timeout=timeout)
        except PlaywrightError as e:
            raise await self._action_failed("click", selector, locator, e, timeout) from e
        self.logger.info(f"Clicked {selector}")
        return ActionResult(success=True, selector=selector, action="click")

    async def send_keys(self, selector: str, text: str, timeout_ms: int | None = None) -> ActionResult:
        self._ensure_started("send_keys")
        timeout = self._timeout(timeout_ms)
        locator = self._locator(selector).first
        try:
            await locator.fill(text, timeout=timeout)
        except PlaywrightError as e:
            raise await self._action_failed("send keys to", selector, locator, e, timeout) from e
        self.logger.info(f"Typed into {selector}")
        return ActionResult(success=True, selector=selector, action="send_keys", value=text)

    async def clear_text(self, selector: str, timeout_ms: int | None = None) -> ActionResult:
        self._ensure_started("clear_text")
        timeout = self._timeout(timeout_ms)
        locator = self._locator(selector).first
        try:
            await locator.clear(timeout=timeout)
        except PlaywrightError as e:
            raise await self._action_failed("clear", selector, locator, e, timeout) from e
        self.logger.info(f"Cleared {selector}")
        return ActionResult(success=True, selector=selector, action="clear_text")

    async def _click_attempt(self, selector: str, timeout_ms: int) -> None:
        locator = await self._wait_for(selector, WaitCondition.CLICKABLE, timeout_ms)
        await locator.scroll_into_view_if_needed(timeout=timeout_ms)
        await locator.click(timeout=timeout_ms)

    async def _send_keys_attempt(
        self, selector: str, text: str, clear_first: bool, timeout_ms: int
    ) -> None:
        locator = await self._wait_for(selector, WaitCondition.CLICKABLE, timeout_ms)
        if clear_first:
            await locator.fill(text, timeout=timeout_ms)
        else:
            await locator.press_sequentially(text, timeout=timeout_ms)

        try:
            actual = await locator.input_value(timeout=timeout_ms)
        except PlaywrightError:
            # Not an input/textarea/select; nothing to verify
            return
        if actual and text not in actual:
            raise ValueError(f"Text verification failed. Expected: {text!r}, actual: {actual!r}")

    async def download(
        self, selector: str, filename: str | None = None, timeout_ms: int | None = None
    ) -> str:
        """
        Click an element that triggers a download and save the file.

        Returns:
            Absolute path of the saved file inside the download directory
        """
        self._ensure_started("download")
        timeout = self._timeout(timeout_ms)
        locator = self._locator(selector).first
        try:
            async with self.session.page.expect_download(timeout=timeout) as download_info:
                await locator.click(timeout=timeout)
            download = await download_info.value
            target = self.output.downloads_dir() / (filename or download.suggested_filename)
            await download.save_as(target)
        except PlaywrightError as e:
            raise await self._action_failed("download via", selector, locator, e, timeout) from e
        self.logger.info(f"Downloaded: {target}")
        return str(target)

    # ---- extraction ------------------------------------------------------

    async def get_text(self, selector: str, timeout_ms: int | None = None) -> str:
        self._ensure_started("get_text")
        timeout = self._timeout(timeout_ms)
        locator = await self._wait_for(selector, WaitCondition.PRESENT, timeout)
        try:
            text = await locator.inner_text(timeout=timeout)
            if not text or not text.strip():
                text = await locator.text_content(timeout=timeout)
        except PlaywrightError as e:
            raise InteractionFailedError("get text from", selector, 1, e) from e
        return (text or "").strip()

    async def get_attribute(
        self, selector: str, name: str, timeout_ms: int | None = None
    ) -> str | None:
        self._ensure_started("get_attribute")
        timeout = self._timeout(timeout_ms)
        locator = await self._wait_for(selector, WaitCondition.PRESENT, timeout)
        try:
            return await locator.get_attribute(name, timeout=timeout)
        except PlaywrightError as e:
            raise InteractionFailedError(f"get attribute '{name}' from", selector, 1, e) from e

    async def execute_script(self, script: str, *args: Any) -> Any:
        """
        Run a WebDriver-style script body (``return`` + ``arguments[i]``).

        Use ``evaluate`` for Playwright-style function expressions.
        """
        self._ensure_started("execute_script")
        try:
            return await self.session.page.evaluate(SCRIPT_WRAPPER.format(script=script), list(args))
        except PlaywrightError as e:
            self.logger.error(f"Execute script failed: {e.message}")
            raise ScriptExecutionFailedError(script, e.message) from e

    async def evaluate(self, function_source: str, arg: Any = None) -> Any:
        self._ensure_started("evaluate")
        try:
            return await self.session.page.evaluate(function_source, arg)
        except PlaywrightError as e:
            raise ScriptExecutionFailedError(function_source, e.message) from e

    # ---- capture ---------------------------------------------------------

    async def _capture_png(self, full_page: bool) -> bytes:
        return await self.session.page.screenshot(
            full_page=full_page,
            type="png",
            animations="disabled" if self.config.disable_animations else "allow",
        )

    # ---- misc ------------------------------------------------------------

    async def get_browser_info(self) -> dict[str, Any]:
        self._ensure_started("get_browser_info")
        page = self.session.page
        return {
            "engine": self.engine.value,
            "browser": self.config.browser.value,
            "browserName": self._browser_type(self.session.playwright).name,
            "browserVersion": self.session.browser.version,
            "userAgent": await page.evaluate("() => navigator.userAgent"),
            "viewport": page.viewport_size,
            "url": page.url,
            "title": await page.title(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
