"""
WebDriver-protocol driver backed by Selenium.

Selenium calls block; they run inline on the event loop, and every wait polls
with ``asyncio.sleep`` so no worker threads are involved. Per-browser tweaks
(chrome, edge, firefox, safari) are driven by ``config.browser`` rather than
subclasses.
"""

import base64
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import requests
from selenium import webdriver
from selenium.common.exceptions import (
    NoAlertPresentException,
    StaleElementReferenceException,
    TimeoutException,
    WebDriverException,
)
from selenium.webdriver.chrome.options import Options as ChromeOptions
from selenium.webdriver.chrome.service import Service as ChromeService
from selenium.webdriver.common.by import By
from selenium.webdriver.edge.options import Options as EdgeOptions
from selenium.webdriver.edge.service import Service as EdgeService
from selenium.webdriver.firefox.options import Options as FirefoxOptions
from selenium.webdriver.firefox.service import Service as FirefoxService
from selenium.webdriver.safari.options import Options as SafariOptions

from .driver import BrowserDriver, DriverSession
from .exceptions import (
    InteractionFailedError,
    NavigationFailedError,
    OperationTimeoutError,
    ScriptExecutionFailedError,
    StartupFailedError,
    UnsupportedSelectorError,
)
from .models import (
    ActionResult,
    BrowserFamily,
    DriverEngine,
    LaunchPlan,
    NavigationResult,
    WaitCondition,
)
from .selector_resolver import LocatorKind, is_webdriver_unsupported, resolve_selector
from .waits import await_condition, wait_until

SCROLL_INTO_VIEW_SCRIPT = 'arguments[0].scrollIntoView({block: "center"});'
SMOOTH_SCROLL_SCRIPT = 'arguments[0].scrollIntoView({block: "center", behavior: "smooth"});'

DISABLE_ANIMATIONS_SCRIPT = """
(() => {
  const install = () => {
    const style = document.createElement('style');
    style.innerHTML = '*,*::before,*::after{animation-duration:0s !important;animation-delay:0s !important;transition-duration:0s !important;transition-delay:0s !important;}';
    (document.head || document.documentElement).appendChild(style);
  };
  if (document.readyState === 'loading') {
    document.addEventListener('DOMContentLoaded', install);
  } else {
    install();
  }
})();
"""

DOWNLOAD_MIME_TYPES = (
    "application/pdf,application/zip,text/csv,application/xml,application/octet-stream"
)

# document.readyState values that satisfy each configured readiness signal
READY_STATES: dict[str, tuple[str, ...]] = {
    "commit": (),
    "domcontentloaded": ("interactive", "complete"),
    "load": ("complete",),
    "networkidle": ("complete",),
}

# Selenium page load strategy matching each readiness signal
PAGE_LOAD_STRATEGIES: dict[str, str] = {
    "commit": "none",
    "domcontentloaded": "eager",
    "load": "normal",
    "networkidle": "normal",
}

WebDriverFactory = Callable[[BrowserFamily, Any, "str | None", "str | None"], Any]


def default_webdriver_factory(
    family: BrowserFamily,
    options: Any,
    driver_path: str | None = None,
    remote_url: str | None = None,
) -> Any:
    """Create a local or remote Selenium session for a browser family"""
    if remote_url:
        return webdriver.Remote(command_executor=remote_url, options=options)
    if family == BrowserFamily.FIREFOX:
        service = FirefoxService(executable_path=driver_path) if driver_path else None
        return webdriver.Firefox(options=options, service=service)
    if family == BrowserFamily.EDGE:
        service = EdgeService(executable_path=driver_path) if driver_path else None
        return webdriver.Edge(options=options, service=service)
    if family == BrowserFamily.WEBKIT:
        return webdriver.Safari(options=options)
    service = ChromeService(executable_path=driver_path) if driver_path else None
    return webdriver.Chrome(options=options, service=service)


@dataclass
class WebDriverSession(DriverSession):
    driver: Any = None


class WebDriverAutomator(BrowserDriver):
    """
    Driver over the W3C WebDriver protocol.

    There is no native auto-waiting, so locating polls with the shared wait
    engine and ``click``/``send_keys`` go through the retrying safe variants.
    ``role=``, ``label=`` and ``placeholder=`` selectors are not supported.

    Example:
        driver = WebDriverAutomator(DriverConfiguration(engine="webdriver", browser="firefox"))
        await driver.start()
        await driver.navigate_to("https://example.com")
        await driver.click("text:More information")
        await driver.quit()
    """

    engine = DriverEngine.WEBDRIVER
    supports_video_recording = False

    def __init__(self, config=None, *, webdriver_factory: WebDriverFactory | None = None, **kwargs):
        super().__init__(config, **kwargs)
        self._webdriver_factory = webdriver_factory or default_webdriver_factory

    def _new_session(self) -> WebDriverSession:
        return WebDriverSession()

    @property
    def _driver(self) -> Any:
        return self.session.driver

    @property
    def webdriver(self) -> Any:
        """Underlying Selenium WebDriver for advanced use"""
        self._ensure_started("webdriver")
        return self.session.driver

    # ---- lifecycle -------------------------------------------------------

    def _check_remote_ready(self, remote_url: str) -> None:
        status_url = remote_url.rstrip("/") + "/status"
        try:
            response = requests.get(status_url, timeout=10)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            raise StartupFailedError(f"Remote WebDriver at {remote_url} is not reachable: {e}") from e

        value = payload.get("value", payload) if isinstance(payload, dict) else {}
        if isinstance(value, dict) and value.get("ready") is False:
            message = value.get("message", "not ready")
            raise StartupFailedError(f"Remote WebDriver at {remote_url} is not ready: {message}")
        self.logger.debug(f"Remote WebDriver ready: {status_url}")

    def _chromium_options(self, plan: LaunchPlan, download_dir: str) -> Any:
        config = self.config
        options = EdgeOptions() if config.browser == BrowserFamily.EDGE else ChromeOptions()

        args = list(plan.args)
        if config.headless:
            args.append("--headless=new")
        args += [
            f"--window-size={config.viewport.width},{config.viewport.height}",
            "--no-sandbox",
            "--disable-dev-shm-usage",
            "--disable-gpu",
        ]
        if config.user_agent:
            args.append(f"--user-agent={config.user_agent}")
        if config.disable_images:
            args.append("--blink-settings=imagesEnabled=false")
        args += list(config.extra_args)
        for arg in dict.fromkeys(args):
            options.add_argument(arg)

        prefs: dict[str, Any] = {
            "download.default_directory": download_dir,
            "download.prompt_for_download": False,
            "download.directory_upgrade": True,
            "safebrowsing.enabled": True,
        }
        if config.disable_javascript:
            prefs["profile.managed_default_content_settings.javascript"] = 2
        options.add_experimental_option("prefs", prefs)

        if plan.executable_path:
            options.binary_location = plan.executable_path
        return options

    def _firefox_options(self, plan: LaunchPlan, download_dir: str) -> Any:
        config = self.config
        options = FirefoxOptions()
        if config.headless:
            options.add_argument("-headless")
        options.add_argument(f"--width={config.viewport.width}")
        options.add_argument(f"--height={config.viewport.height}")
        for arg in config.extra_args:
            options.add_argument(arg)

        options.set_preference("browser.download.dir", download_dir)
        options.set_preference("browser.download.folderList", 2)
        options.set_preference("browser.download.useDownloadDir", True)
        options.set_preference("browser.helperApps.neverAsk.saveToDisk", DOWNLOAD_MIME_TYPES)
        if config.user_agent:
            options.set_preference("general.useragent.override", config.user_agent)
        if config.disable_images:
            options.set_preference("permissions.default.image", 2)
        if config.disable_javascript:
            options.set_preference("javascript.enabled", False)

        if plan.executable_path:
            options.binary_location = plan.executable_path
        return options

    def build_options(self, plan: LaunchPlan, download_dir: str) -> Any:
        """Selenium options object for the configured browser family"""
        family = self.config.browser
        if family.is_chromium_based:
            options = self._chromium_options(plan, download_dir)
        elif family == BrowserFamily.FIREFOX:
            options = self._firefox_options(plan, download_dir)
        else:
            options = SafariOptions()
            if self.config.headless:
                self.logger.warning("Safari has no headless mode; launching a visible window")

        options.accept_insecure_certs = self.config.accept_insecure_certs
        options.page_load_strategy = PAGE_LOAD_STRATEGIES[self.config.page_ready_state]
        return options

    async def _launch(self, plan: LaunchPlan) -> None:
        config = self.config
        if config.remote_url:
            self._check_remote_ready(config.remote_url)

        download_dir = str(self.output.downloads_dir())
        options = self.build_options(plan, download_dir)
        self.logger.debug(f"Download directory: {download_dir}")

        driver = self._webdriver_factory(config.browser, options, plan.driver_path, config.remote_url)
        self.session.driver = driver

        driver.implicitly_wait(config.implicit_wait_ms / 1000)
        driver.set_page_load_timeout(config.navigation_timeout_ms / 1000)
        driver.set_script_timeout(config.timeout_ms / 1000)

        if config.browser.is_chromium_based:
            self._configure_chromium(driver)

    def _configure_chromium(self, driver: Any) -> None:
        try:
            if self.config.disable_animations and not self.config.remote_url:
                driver.execute_cdp_cmd(
                    "Page.addScriptToEvaluateOnNewDocument", {"source": DISABLE_ANIMATIONS_SCRIPT}
                )
            if not self.config.headless:
                driver.set_window_rect(
                    x=0, y=0, width=self.config.viewport.width, height=self.config.viewport.height
                )
        except WebDriverException as e:
            # Performance tweaks only; the session is usable without them
            self.logger.warning(f"Chromium performance configuration failed: {e}")

    async def _release(self) -> None:
        driver, self.session.driver = self.session.driver, None
        if driver is not None:
            driver.quit()

    # ---- navigation ------------------------------------------------------

    async def _wait_for_ready_state(self) -> None:
        states = READY_STATES[self.config.page_ready_state]
        if not states:
            return
        driver = self._driver
        await wait_until(
            lambda: driver.execute_script("return document.readyState") in states,
            self.config.navigation_timeout_ms,
            poll_interval_ms=self.config.poll_interval_ms,
            description=f"document.readyState in {states}",
            clock=self._clock,
            sleep=self._sleep,
        )

    async def navigate_to(self, url: str) -> NavigationResult:
        self._ensure_started("navigate_to")
        self.logger.info(f"Navigating to: {url}")
        driver = self._driver
        try:
            driver.get(url)
        except TimeoutException as e:
            self.logger.error(f"Navigation timed out: {url}")
            raise NavigationFailedError(
                url, f"page load timed out after {self.config.navigation_timeout_ms}ms", timed_out=True
            ) from e
        except WebDriverException as e:
            self.logger.error(f"Navigation failed: {url}: {e.msg}")
            raise NavigationFailedError(url, e.msg or str(e)) from e

        try:
            await self._wait_for_ready_state()
        except OperationTimeoutError as e:
            self.logger.error(f"Page did not become ready: {url}")
            raise NavigationFailedError(url, str(e), timed_out=True) from e

        current = driver.current_url
        self.session.current_url = current
        self.logger.info("Navigation completed successfully")
        return NavigationResult(url=current, title=driver.title, success=True)

    async def get_title(self) -> str:
        self._ensure_started("get_title")
        return self._driver.title

    async def get_current_url(self) -> str:
        self._ensure_started("get_current_url")
        self.session.current_url = self._driver.current_url
        return self.session.current_url

    async def get_page_source(self) -> str:
        self._ensure_started("get_page_source")
        return self._driver.page_source

    async def _history(self, operation: str, step: Callable[[], Any]) -> None:
        self._ensure_started(operation)
        try:
            step()
        except WebDriverException as e:
            url = self.session.current_url or "current page"
            raise NavigationFailedError(url, f"{operation} failed: {e.msg}") from e
        await self._wait_for_ready_state()
        self.session.current_url = self._driver.current_url
        self.logger.info(f"{operation}: {self.session.current_url}")

    async def go_back(self) -> None:
        await self._history("go_back", lambda: self._driver.back())

    async def go_forward(self) -> None:
        await self._history("go_forward", lambda: self._driver.forward())

    async def refresh(self) -> None:
        await self._history("refresh", lambda: self._driver.refresh())

    # ---- locating --------------------------------------------------------

    def _by(self, selector: str) -> tuple[str, str]:
        if is_webdriver_unsupported(selector):
            raise UnsupportedSelectorError(selector, self.engine.value)
        descriptor = resolve_selector(selector)
        if descriptor.is_xpath:
            return By.XPATH, descriptor.value
        if descriptor.kind == LocatorKind.ID:
            return By.ID, descriptor.value
        if descriptor.kind == LocatorKind.CLASS_NAME and "." not in descriptor.value:
            return By.CLASS_NAME, descriptor.value
        return By.CSS_SELECTOR, descriptor.to_css()

    @staticmethod
    def _check(element: Any, condition: WaitCondition) -> bool:
        try:
            if condition == WaitCondition.VISIBLE:
                return element.is_displayed()
            if condition == WaitCondition.CLICKABLE:
                return element.is_displayed() and element.is_enabled()
            if condition == WaitCondition.INVISIBLE:
                return not element.is_displayed()
            return True
        except StaleElementReferenceException:
            if condition == WaitCondition.INVISIBLE:
                return True
            raise

    async def _wait_for(self, selector: str, condition: WaitCondition, timeout_ms: int) -> Any:
        by, value = self._by(selector)
        driver = self._driver

        def locate():
            found = driver.find_elements(by, value)
            return found[0] if found else None

        return await await_condition(
            locate,
            condition,
            timeout_ms,
            check=self._check,
            poll_interval_ms=self.config.poll_interval_ms,
            description=selector,
            clock=self._clock,
            sleep=self._sleep,
        )

    async def find_elements(self, selector: str) -> list[Any]:
        self._ensure_started("find_elements")
        by, value = self._by(selector)
        try:
            return list(self._driver.find_elements(by, value))
        except WebDriverException as e:
            self.logger.warning(f"Elements not found: {selector}: {e.msg}")
            return []

    async def is_element_visible(self, selector: str) -> bool:
        self._ensure_started("is_element_visible")
        try:
            found = self._driver.find_elements(*self._by(selector))
            return bool(found) and found[0].is_displayed()
        except WebDriverException:
            return False

    async def scroll_to_element(self, selector: str) -> None:
        self._ensure_started("scroll_to_element")
        element = await self._wait_for(selector, WaitCondition.PRESENT, self.config.attempt_timeout_ms)
        try:
            self._driver.execute_script(SMOOTH_SCROLL_SCRIPT, element)
        except WebDriverException as e:
            raise InteractionFailedError("scroll to", selector, 1, e) from e

    # ---- interaction -----------------------------------------------------

    async def _click_attempt(self, selector: str, timeout_ms: int) -> None:
        element = await self._wait_for(selector, WaitCondition.CLICKABLE, timeout_ms)
        self._driver.execute_script(SCROLL_INTO_VIEW_SCRIPT, element)
        element.click()

    async def _send_keys_attempt(
        self, selector: str, text: str, clear_first: bool, timeout_ms: int
    ) -> None:
        element = await self._wait_for(selector, WaitCondition.CLICKABLE, timeout_ms)
        self._driver.execute_script(SCROLL_INTO_VIEW_SCRIPT, element)
        if clear_first:
            element.clear()
            await self._sleep(0.1)
        element.send_keys(text)

        actual = element.get_attribute("value")
        if actual and text not in actual:
            raise ValueError(f"Text verification failed. Expected: {text!r}, actual: {actual!r}")

    async def click(self, selector: str, timeout_ms: int | None = None) -> ActionResult:
        return await self.safe_click(selector, timeout_ms=timeout_ms)

    async def send_keys(self, selector: str, text: str, timeout_ms: int | None = None) -> ActionResult:
        return await self.safe_send_keys(selector, text, clear_first=True, timeout_ms=timeout_ms)

    async def clear_text(self, selector: str, timeout_ms: int | None = None) -> ActionResult:
        self._ensure_started("clear_text")
        element = await self._wait_for(selector, WaitCondition.VISIBLE, self._timeout(timeout_ms))
        try:
            element.clear()
        except WebDriverException as e:
            raise InteractionFailedError("clear", selector, 1, e) from e
        self.logger.info(f"Cleared {selector}")
        return ActionResult(success=True, selector=selector, action="clear_text")

    # ---- extraction ------------------------------------------------------

    async def get_text(self, selector: str, timeout_ms: int | None = None) -> str:
        self._ensure_started("get_text")
        element = await self._wait_for(selector, WaitCondition.PRESENT, self._timeout(timeout_ms))
        try:
            text = element.text
            if not text or not text.strip():
                # Hidden elements report no rendered text
                text = self._driver.execute_script("return arguments[0].textContent;", element)
        except WebDriverException as e:
            raise InteractionFailedError("get text from", selector, 1, e) from e
        return (text or "").strip()

    async def get_attribute(
        self, selector: str, name: str, timeout_ms: int | None = None
    ) -> str | None:
        self._ensure_started("get_attribute")
        element = await self._wait_for(selector, WaitCondition.PRESENT, self._timeout(timeout_ms))
        try:
            return element.get_attribute(name)
        except WebDriverException as e:
            raise InteractionFailedError(f"get attribute '{name}' from", selector, 1, e) from e

    async def execute_script(self, script: str, *args: Any) -> Any:
        self._ensure_started("execute_script")
        try:
            return self._driver.execute_script(script, *args)
        except WebDriverException as e:
            self.logger.error(f"Execute script failed: {e.msg}")
            raise ScriptExecutionFailedError(script, e.msg or str(e)) from e

    async def evaluate(self, function_source: str, arg: Any = None) -> Any:
        script = f"return ({function_source})(arguments[0]);"
        self._ensure_started("evaluate")
        try:
            return self._driver.execute_script(script, arg)
        except WebDriverException as e:
            raise ScriptExecutionFailedError(function_source, e.msg or str(e)) from e

    # ---- capture ---------------------------------------------------------

    async def _capture_png(self, full_page: bool) -> bytes:
        driver = self._driver
        family = self.config.browser
        if full_page and family == BrowserFamily.FIREFOX:
            return driver.get_full_page_screenshot_as_png()
        if full_page and family.is_chromium_based and not self.config.remote_url:
            metrics = driver.execute_cdp_cmd("Page.getLayoutMetrics", {})
            size = metrics.get("cssContentSize") or metrics["contentSize"]
            result = driver.execute_cdp_cmd(
                "Page.captureScreenshot",
                {
                    "format": "png",
                    "captureBeyondViewport": True,
                    "clip": {
                        "x": 0,
                        "y": 0,
                        "width": size["width"],
                        "height": size["height"],
                        "scale": 1,
                    },
                },
            )
            return base64.b64decode(result["data"])
        return driver.get_screenshot_as_png()

    # ---- misc ------------------------------------------------------------

    async def handle_alert(self, action: str = "accept", text: str | None = None) -> str | None:
        """
        Accept, dismiss, or answer a JavaScript alert/confirm/prompt.

        Returns:
            The alert text, or None when no alert is open
        """
        self._ensure_started("handle_alert")
        normalized = action.lower()
        if normalized not in ("accept", "dismiss", "sendkeys"):
            raise ValueError(f"Unknown alert action: {action}")
        try:
            alert = self._driver.switch_to.alert
            message = alert.text
        except NoAlertPresentException:
            return None

        if normalized == "dismiss":
            alert.dismiss()
        else:
            if normalized == "sendkeys" and text:
                alert.send_keys(text)
            alert.accept()
        self.logger.info(f'Handled alert: {normalized} - "{message}"')
        return message

    async def get_browser_info(self) -> dict[str, Any]:
        self._ensure_started("get_browser_info")
        driver = self._driver
        capabilities = driver.capabilities or {}
        return {
            "engine": self.engine.value,
            "browser": self.config.browser.value,
            "browserName": capabilities.get("browserName"),
            "browserVersion": capabilities.get("browserVersion"),
            "userAgent": driver.execute_script("return navigator.userAgent;"),
            "viewport": driver.execute_script(
                "return {width: window.innerWidth, height: window.innerHeight};"
            ),
            "url": driver.current_url,
            "title": driver.title,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
