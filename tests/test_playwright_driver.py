"""
Tests for the Playwright-backed driver.

The Playwright object graph (playwright -> browser -> context -> page -> locator)
is replaced with mocks injected through ``playwright_factory``.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from automator.exceptions import (
    ElementNotFoundError,
    InteractionFailedError,
    NavigationFailedError,
    NotStartedError,
    ScriptExecutionFailedError,
    StartupFailedError,
)
from automator.models import DriverConfiguration, DriverEngine, DriverState
from automator.output import OutputResourceManager
from automator.playwright_driver import SCRIPT_WRAPPER, PlaywrightAutomator

LOCATOR_METHODS = (
    "click",
    "fill",
    "clear",
    "wait_for",
    "inner_text",
    "text_content",
    "get_attribute",
    "is_visible",
    "is_enabled",
    "count",
    "all",
    "scroll_into_view_if_needed",
    "input_value",
    "press_sequentially",
)


class FakePlaywright:
    """Mocked Playwright object graph with recorded close order"""

    def __init__(self) -> None:
        self.closed: list[str] = []

        self.locator = MagicMock(name="locator")
        self.locator.first = self.locator
        for name in LOCATOR_METHODS:
            setattr(self.locator, name, AsyncMock(name=name))
        self.locator.is_enabled.return_value = True
        self.locator.count.return_value = 1

        self.page = MagicMock(name="page")
        self.page.url = "https://example.com/"
        self.page.video = None
        self.page.goto = AsyncMock(return_value=MagicMock(ok=True, status=200))
        self.page.title = AsyncMock(return_value="Example Domain")
        self.page.content = AsyncMock(return_value="<html></html>")
        self.page.evaluate = AsyncMock(return_value=None)
        self.page.screenshot = AsyncMock(return_value=b"\x89PNG")
        for name in ("go_back", "go_forward", "reload"):
            setattr(self.page, name, AsyncMock(name=name))
        for name in ("locator", "get_by_role", "get_by_label", "get_by_placeholder", "get_by_test_id", "get_by_text"):
            getattr(self.page, name).return_value = self.locator

        self.context = MagicMock(name="context")
        self.context.new_page = AsyncMock(return_value=self.page)
        self.context.route = AsyncMock()
        self.context.close = AsyncMock(side_effect=lambda: self.closed.append("context"))

        self.browser = MagicMock(name="browser")
        self.browser.version = "120.0.6099.28"
        self.browser.new_context = AsyncMock(return_value=self.context)
        self.browser.close = AsyncMock(side_effect=lambda: self.closed.append("browser"))

        self.playwright = MagicMock(name="playwright")
        for name in ("chromium", "firefox", "webkit"):
            browser_type = getattr(self.playwright, name)
            browser_type.name = name
            browser_type.launch = AsyncMock(return_value=self.browser)
        self.playwright.stop = AsyncMock(side_effect=lambda: self.closed.append("playwright"))

        manager = MagicMock(name="manager")
        manager.start = AsyncMock(return_value=self.playwright)
        self.factory = MagicMock(return_value=manager)


def make_driver(tmp_path, clock, **overrides):
    fake = FakePlaywright()
    driver = PlaywrightAutomator(
        DriverConfiguration(attempt_timeout_ms=500, **overrides),
        playwright_factory=fake.factory,
        output_manager=OutputResourceManager(tmp_path / "output", tmp_path / "downloads"),
        environ={},
        logger=MagicMock(),
        clock=clock,
        sleep=clock.sleep,
    )
    return driver, fake


def timeout_error(message="Timeout 30000ms exceeded."):
    return PlaywrightTimeoutError(message)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_launches_chromium(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)

        await driver.start()

        assert driver.is_started()
        launch = fake.playwright.chromium.launch.call_args.kwargs
        assert launch["headless"] is True
        assert "--no-sandbox" in launch["args"]
        assert launch["downloads_path"] == str(tmp_path / "downloads")
        assert "channel" not in launch

        context = fake.browser.new_context.call_args.kwargs
        assert context["viewport"] == {"width": 1920, "height": 1080}
        assert context["ignore_https_errors"] is True
        assert context["java_script_enabled"] is True
        assert context["accept_downloads"] is True
        assert "record_video_dir" not in context

        fake.context.set_default_timeout.assert_called_once_with(30000)
        fake.context.route.assert_not_awaited()
        assert driver.page is fake.page

    @pytest.mark.asyncio
    async def test_engine_and_capability(self, tmp_path, clock) -> None:
        driver = PlaywrightAutomator(DriverConfiguration(engine="webdriver"))
        assert driver.get_options().engine == DriverEngine.PLAYWRIGHT
        assert driver.supports_video_recording is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("browser,channel", [("chrome", "chrome"), ("edge", "msedge")])
    async def test_branded_channels(self, tmp_path, clock, browser, channel) -> None:
        driver, fake = make_driver(tmp_path, clock, browser=browser)

        await driver.start()

        assert fake.playwright.chromium.launch.call_args.kwargs["channel"] == channel

    @pytest.mark.asyncio
    async def test_configured_executable_replaces_channel(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock, browser="chrome", executable_path="/usr/bin/chrome")

        await driver.start()

        launch = fake.playwright.chromium.launch.call_args.kwargs
        assert launch["executable_path"] == "/usr/bin/chrome"
        assert "channel" not in launch

    @pytest.mark.asyncio
    async def test_firefox_uses_firefox_engine(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock, browser="firefox", headless=False)

        await driver.start()

        fake.playwright.chromium.launch.assert_not_awaited()
        launch = fake.playwright.firefox.launch.call_args.kwargs
        assert launch["headless"] is False
        assert "--no-sandbox" not in launch["args"]

    @pytest.mark.asyncio
    async def test_disable_images_routes_requests(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock, disable_images=True)

        await driver.start()

        fake.context.route.assert_awaited_once_with("**/*", PlaywrightAutomator._block_images)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("resource_type,aborted", [("image", True), ("script", False)])
    async def test_block_images_handler(self, resource_type, aborted) -> None:
        route = MagicMock()
        route.request.resource_type = resource_type
        route.abort = AsyncMock()
        route.continue_ = AsyncMock()

        await PlaywrightAutomator._block_images(route)

        assert route.abort.await_count == (1 if aborted else 0)
        assert route.continue_.await_count == (0 if aborted else 1)

    @pytest.mark.asyncio
    async def test_quit_closes_context_before_browser(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        await driver.start()

        result = await driver.quit()

        assert result is None
        assert fake.closed == ["context", "browser", "playwright"]
        assert driver.state == DriverState.STOPPED

    @pytest.mark.asyncio
    async def test_quit_continues_after_close_failure(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.context.close.side_effect = PlaywrightError("Target closed")
        await driver.start()

        await driver.quit()

        fake.browser.close.assert_awaited_once()
        fake.playwright.stop.assert_awaited_once()
        driver.logger.error.assert_called()
        assert not driver.is_started()

    @pytest.mark.asyncio
    async def test_quit_stop_failure_still_reports_first_error(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.browser.close.side_effect = PlaywrightError("browser gone")
        fake.playwright.stop.side_effect = PlaywrightError("driver gone")
        await driver.start()

        with pytest.raises(PlaywrightError, match="browser gone"):
            await driver.quit(raise_on_error=True)

        fake.playwright.stop.assert_awaited_once()
        assert driver.state == DriverState.STOPPED

    @pytest.mark.asyncio
    async def test_launch_failure_cleans_up(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.browser.new_context.side_effect = PlaywrightError("context failed")

        with pytest.raises(StartupFailedError) as exc_info:
            await driver.start()

        assert "context failed" in str(exc_info.value)
        assert fake.closed == ["browser", "playwright"]
        assert driver.state == DriverState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_operations_require_start(self, tmp_path, clock) -> None:
        driver, _ = make_driver(tmp_path, clock)

        with pytest.raises(NotStartedError):
            await driver.click("#foo")
        with pytest.raises(NotStartedError):
            _ = driver.page


class TestVideo:
    @pytest.mark.asyncio
    async def test_record_video_context_options(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock, record_video=True)

        await driver.start()

        context = fake.browser.new_context.call_args.kwargs
        assert context["record_video_dir"] == str(tmp_path / "output" / "videos")
        assert context["record_video_size"] == {"width": 1920, "height": 1080}

    @pytest.mark.asyncio
    async def test_video_moved_after_context_close(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock, record_video=True)
        recording = tmp_path / "output" / "videos" / "abc123.webm"
        fake.page.video = MagicMock()
        fake.page.video.path = AsyncMock(return_value=str(recording))
        await driver.start()
        recording.write_bytes(b"webm")

        target = tmp_path / "final" / "session.webm"
        result = await driver.quit(video_output_path=target)

        assert result == str(target)
        assert target.read_bytes() == b"webm"
        assert not recording.exists()
        assert driver.video_path == str(target)

    @pytest.mark.asyncio
    async def test_quit_positional_flag_raises_and_leaves_video(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock, record_video=True)
        recording = tmp_path / "output" / "videos" / "abc123.webm"
        fake.page.video = MagicMock()
        fake.page.video.path = AsyncMock(return_value=str(recording))
        fake.context.close.side_effect = RuntimeError("context close failed")
        await driver.start()
        recording.write_bytes(b"webm")

        with pytest.raises(RuntimeError, match="context close failed"):
            await driver.quit(True)

        fake.browser.close.assert_awaited_once()
        fake.playwright.stop.assert_awaited_once()
        assert recording.exists()
        assert driver.video_path == str(recording)
        assert not driver.is_started()

    @pytest.mark.asyncio
    async def test_quit_moves_video_when_stop_fails(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock, record_video=True)
        recording = tmp_path / "output" / "videos" / "abc123.webm"
        fake.page.video = MagicMock()
        fake.page.video.path = AsyncMock(return_value=str(recording))
        fake.playwright.stop.side_effect = PlaywrightError("driver gone")
        await driver.start()
        recording.write_bytes(b"webm")

        target = tmp_path / "final" / "session.webm"
        result = await driver.quit(video_output_path=target)

        assert result == str(target)
        assert target.read_bytes() == b"webm"

    @pytest.mark.asyncio
    async def test_video_path_kept_without_target(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock, record_video=True)
        recording = tmp_path / "output" / "videos" / "abc123.webm"
        fake.page.video = MagicMock()
        fake.page.video.path = AsyncMock(return_value=str(recording))
        await driver.start()

        assert await driver.get_video_path() == str(recording)
        assert await driver.quit() == str(recording)


class TestNavigation:
    @pytest.mark.asyncio
    async def test_navigate_to(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        await driver.start()

        result = await driver.navigate_to("https://example.com")

        fake.page.goto.assert_awaited_once_with(
            "https://example.com", wait_until="domcontentloaded", timeout=30000
        )
        assert result.success
        assert result.status == 200
        assert result.title == "Example Domain"

    @pytest.mark.asyncio
    async def test_navigate_reports_http_failure(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.page.goto.return_value = MagicMock(ok=False, status=404)
        await driver.start()

        result = await driver.navigate_to("https://example.com/missing")

        assert not result.success
        assert result.status == 404

    @pytest.mark.asyncio
    async def test_navigate_timeout(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.page.goto.side_effect = timeout_error()
        await driver.start()

        with pytest.raises(NavigationFailedError) as exc_info:
            await driver.navigate_to("https://slow.example")

        assert exc_info.value.timed_out
        assert driver.is_started()

    @pytest.mark.asyncio
    async def test_navigate_network_error(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")
        await driver.start()

        with pytest.raises(NavigationFailedError) as exc_info:
            await driver.navigate_to("https://nowhere.invalid")

        assert not exc_info.value.timed_out
        assert "ERR_NAME_NOT_RESOLVED" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_history(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        await driver.start()

        await driver.go_back()
        await driver.go_forward()
        await driver.refresh()

        fake.page.go_back.assert_awaited_once()
        fake.page.go_forward.assert_awaited_once()
        fake.page.reload.assert_awaited_once()


class TestLocating:
    @pytest.mark.parametrize(
        "selector,method,argument",
        [
            ("role=button", "get_by_role", "button"),
            ('role=button[name="Save"]', "locator", 'role=button[name="Save"]'),
            ("label=Email", "get_by_label", "Email"),
            ("placeholder=Search", "get_by_placeholder", "Search"),
            ("data-testid=login", "get_by_test_id", "login"),
            ("#foo", "locator", '[id="foo"]'),
            (".bar", "locator", ".bar"),
            ("//div[@id='x']", "locator", "xpath=//div[@id='x']"),
            ("text:Sign in", "locator", 'xpath=//*[contains(text(), "Sign in")]'),
            ("name=q", "locator", '[name="q"]'),
        ],
    )
    @pytest.mark.asyncio
    async def test_selector_mapping(self, tmp_path, clock, selector, method, argument) -> None:
        driver, fake = make_driver(tmp_path, clock)
        await driver.start()

        driver._locator(selector)

        getattr(fake.page, method).assert_called_once_with(argument)

    @pytest.mark.parametrize(
        "selector,text,exact",
        [
            ("text=Sign", "Sign", False),
            ('text="Sign in"', "Sign in", True),
            ("text='Sign in'", "Sign in", True),
        ],
    )
    @pytest.mark.asyncio
    async def test_text_selector_exact_when_quoted(self, tmp_path, clock, selector, text, exact) -> None:
        driver, fake = make_driver(tmp_path, clock)
        await driver.start()

        driver._locator(selector)

        fake.page.get_by_text.assert_called_once_with(text, exact=exact)

    @pytest.mark.asyncio
    async def test_find_elements(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.locator.all.return_value = ["a", "b"]
        await driver.start()

        assert await driver.find_elements("li") == ["a", "b"]

        fake.locator.all.side_effect = PlaywrightError("Target closed")
        assert await driver.find_elements("li") == []

    @pytest.mark.asyncio
    async def test_wait_for_element_timeout(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.locator.wait_for.side_effect = timeout_error()
        await driver.start()

        with pytest.raises(ElementNotFoundError) as exc_info:
            await driver.wait_for_element("#missing", timeout_ms=1000)

        fake.locator.wait_for.assert_awaited_once_with(state="attached", timeout=1000)
        assert exc_info.value.selector == "#missing"
        assert exc_info.value.condition == "present"

    @pytest.mark.asyncio
    async def test_wait_for_clickable_polls_enabled(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.locator.is_enabled.side_effect = [False, True]
        await driver.start()

        result = await driver.wait_for_clickable("#submit", timeout_ms=1000)

        fake.locator.wait_for.assert_awaited_once_with(state="visible", timeout=1000)
        assert result.success
        assert clock.sleeps == [0.1]

    @pytest.mark.asyncio
    async def test_wait_for_invisible(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        await driver.start()

        result = await driver.wait_for_invisible(".spinner")

        fake.locator.wait_for.assert_awaited_once_with(state="hidden", timeout=30000)
        assert result.success

    @pytest.mark.asyncio
    async def test_element_exists_and_visible(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.locator.all.return_value = []
        fake.locator.is_visible.return_value = True
        await driver.start()

        assert await driver.element_exists("#foo") is False
        assert await driver.is_element_visible("#foo") is True


class TestInteraction:
    @pytest.mark.asyncio
    async def test_click_is_single_native_call(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        await driver.start()

        result = await driver.click("data-testid=login")

        fake.locator.click.assert_awaited_once_with(timeout=30000)
        assert result.attempts == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_click_missing_element(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.locator.click.side_effect = timeout_error()
        fake.locator.count.return_value = 0
        await driver.start()

        with pytest.raises(ElementNotFoundError):
            await driver.click("#missing")

    @pytest.mark.asyncio
    async def test_click_on_present_but_blocked_element(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.locator.click.side_effect = timeout_error()
        await driver.start()

        with pytest.raises(InteractionFailedError) as exc_info:
            await driver.click("#covered")

        assert exc_info.value.selector == "#covered"

    @pytest.mark.asyncio
    async def test_safe_click_exhausts_exactly_three_attempts(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.locator.wait_for.side_effect = timeout_error()
        await driver.start()

        with pytest.raises(InteractionFailedError) as exc_info:
            await driver.safe_click("#never")

        assert exc_info.value.attempts == 3
        assert fake.locator.wait_for.await_count == 3
        assert clock.sleeps == [1.0, 1.0]
        fake.locator.click.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_safe_send_keys_verifies_value(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.locator.input_value.return_value = "hello"
        await driver.start()

        result = await driver.safe_send_keys("#name", "hello")

        fake.locator.fill.assert_awaited_once_with("hello", timeout=500)
        assert result.attempts == 1

    @pytest.mark.asyncio
    async def test_send_keys_fills(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        await driver.start()

        result = await driver.send_keys("#name", "hello")

        fake.locator.fill.assert_awaited_once_with("hello", timeout=30000)
        assert result.value == "hello"

    @pytest.mark.asyncio
    async def test_download_saves_into_download_directory(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        download = MagicMock()
        download.suggested_filename = "report.csv"
        download.save_as = AsyncMock()

        async def resolved():
            return download

        info = MagicMock()
        info.value = resolved()
        expectation = MagicMock()
        expectation.__aenter__ = AsyncMock(return_value=info)
        expectation.__aexit__ = AsyncMock(return_value=False)
        fake.page.expect_download.return_value = expectation
        await driver.start()

        path = await driver.download("text:Export")

        expected = tmp_path / "downloads" / "report.csv"
        assert path == str(expected)
        download.save_as.assert_awaited_once_with(expected)


class TestExtraction:
    @pytest.mark.asyncio
    async def test_get_text(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.locator.inner_text.return_value = "  Example Domain \n"
        await driver.start()

        assert await driver.get_text("h1") == "Example Domain"

    @pytest.mark.asyncio
    async def test_get_text_falls_back_to_text_content(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.locator.inner_text.return_value = ""
        fake.locator.text_content.return_value = " hidden "
        await driver.start()

        assert await driver.get_text(".hidden") == "hidden"

    @pytest.mark.asyncio
    async def test_execute_script_uses_webdriver_semantics(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.page.evaluate.return_value = 2
        await driver.start()

        assert await driver.execute_script("return arguments[0] + 1;", 1) == 2
        fake.page.evaluate.assert_awaited_once_with(
            SCRIPT_WRAPPER.format(script="return arguments[0] + 1;"), [1]
        )

    @pytest.mark.asyncio
    async def test_execute_script_failure(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        error = PlaywrightError("ReferenceError: foo is not defined")
        fake.page.evaluate.side_effect = error
        await driver.start()

        with pytest.raises(ScriptExecutionFailedError) as exc_info:
            await driver.execute_script("return foo;")

        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_screenshot(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        await driver.start()

        path = await driver.take_screenshot("home", include_timestamp=False)

        fake.page.screenshot.assert_awaited_once_with(full_page=True, type="png", animations="disabled")
        assert path == str(tmp_path / "output" / "screenshots" / "home.png")

    @pytest.mark.asyncio
    async def test_browser_info(self, tmp_path, clock) -> None:
        driver, fake = make_driver(tmp_path, clock)
        fake.page.evaluate.return_value = "Mozilla/5.0"
        fake.page.viewport_size = {"width": 1920, "height": 1080}
        await driver.start()

        info = await driver.get_browser_info()

        assert info["engine"] == "playwright"
        assert info["browserName"] == "chromium"
        assert info["browserVersion"] == "120.0.6099.28"
        assert info["userAgent"] == "Mozilla/5.0"
