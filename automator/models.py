"""
Pydantic models for driver configuration and operation results
"""

from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DriverEngine(str, Enum):
    """Browser automation engine family backing a driver"""

    PLAYWRIGHT = "playwright"  # DevTools/BiDi-style controller
    WEBDRIVER = "webdriver"  # W3C WebDriver protocol (Selenium)


class BrowserFamily(str, Enum):
    CHROMIUM = "chromium"
    CHROME = "chrome"
    EDGE = "edge"
    FIREFOX = "firefox"
    WEBKIT = "webkit"

    @property
    def is_chromium_based(self) -> bool:
        return self in (BrowserFamily.CHROMIUM, BrowserFamily.CHROME, BrowserFamily.EDGE)

    @classmethod
    def parse(cls, value: "str | BrowserFamily") -> "BrowserFamily":
        """Parse a browser name, accepting common aliases (safari, msedge)"""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        aliases = {"safari": "webkit", "msedge": "edge", "microsoftedge": "edge"}
        return cls(aliases.get(normalized, normalized))


class WaitCondition(str, Enum):
    """Element state a wait must reach before returning"""

    PRESENT = "present"
    VISIBLE = "visible"
    CLICKABLE = "clickable"
    INVISIBLE = "invisible"


class DriverState(str, Enum):
    UNINITIALIZED = "uninitialized"
    STARTED = "started"
    STOPPED = "stopped"


class ViewportSize(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int = Field(default=1920, gt=0)
    height: int = Field(default=1080, gt=0)

    def to_playwright_dict(self) -> dict[str, int]:
        return {"width": self.width, "height": self.height}


PageReadyState = Literal["load", "domcontentloaded", "networkidle", "commit"]


class DriverConfiguration(BaseModel):
    """
    Immutable driver configuration.

    Constructed once per driver; reconfiguring requires a new driver instance.
    An empty configuration yields headless chromium at 1920x1080 with a 30s timeout.

    Example:
        config = DriverConfiguration(engine="webdriver", browser="firefox", headless=False)
        tweaked = config.with_overrides(timeout_ms=10000)
    """

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    engine: DriverEngine = DriverEngine.PLAYWRIGHT
    browser: BrowserFamily = BrowserFamily.CHROMIUM
    headless: bool = True
    viewport: ViewportSize = Field(default_factory=ViewportSize)

    # Timeouts (milliseconds)
    timeout_ms: int = Field(default=30000, gt=0)
    implicit_wait_ms: int = Field(default=0, ge=0)
    navigation_timeout_ms: int = Field(default=30000, gt=0)
    page_ready_state: PageReadyState = "domcontentloaded"

    # Browser behaviour
    user_agent: str | None = None
    accept_insecure_certs: bool = True
    disable_images: bool = False
    disable_javascript: bool = False
    disable_animations: bool = True
    slow_mo_ms: int = Field(default=0, ge=0)
    executable_path: str | None = None
    remote_url: str | None = None
    extra_args: tuple[str, ...] = ()

    # Output artifacts
    output_path: str = "./output"
    downloads_path: str = "./downloads"
    record_video: bool = False
    full_page_screenshots: bool = True

    # Retry discipline
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay_ms: int = Field(default=1000, ge=0)
    attempt_timeout_ms: int = Field(default=5000, gt=0)
    poll_interval_ms: int = Field(default=100, gt=0)

    @field_validator("browser", mode="before")
    @classmethod
    def _parse_browser(cls, value: Any) -> Any:
        if isinstance(value, str):
            return BrowserFamily.parse(value)
        return value

    @field_validator("viewport", mode="before")
    @classmethod
    def _parse_viewport(cls, value: Any) -> Any:
        # Accept the {"width": .., "height": ..} shape used by window-size options
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return {"width": value[0], "height": value[1]}
        return value

    @field_validator("user_agent", "executable_path", "remote_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def with_overrides(self, **overrides: Any) -> "DriverConfiguration":
        """Return a new configuration with the given fields replaced (validated)"""
        data = self.model_dump()
        data.update(overrides)
        return DriverConfiguration.model_validate(data)


class NavigationResult(BaseModel):
    url: str
    title: str
    success: bool
    status: int | None = None


class ActionResult(BaseModel):
    """Outcome of an element interaction or wait"""

    success: bool
    selector: str
    action: str
    attempts: int = 1
    value: str | None = None


class OutputDirectoryConfig(BaseModel):
    """Resolved absolute artifact directories"""

    base_directory: Path
    screenshots_directory: Path
    videos_directory: Path
    downloads_directory: Path


class LaunchPlan(BaseModel):
    """Executable and arguments chosen for one browser launch"""

    source: Literal["serverless", "configured", "environment", "default"]
    executable_path: str | None = None
    driver_path: str | None = None
    args: list[str] = Field(default_factory=list)

    @property
    def is_serverless(self) -> bool:
        return self.source == "serverless"
