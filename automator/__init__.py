"""
Automator - unified browser automation over WebDriver (Selenium) and Playwright
"""

from .acquisition import (
    LayerBrowserResolver,
    ServerlessBrowser,
    ServerlessBrowserResolver,
    acquire_launch_plan,
    is_serverless_sandbox,
)
from .config import ConfigReader, driver_configuration_from
from .driver import BrowserDriver, DriverLogger, DriverSession
from .exceptions import (
    AutomationError,
    CaptureFailedError,
    ConfigurationError,
    ElementNotFoundError,
    InteractionFailedError,
    NavigationFailedError,
    NotStartedError,
    OperationTimeoutError,
    ScriptExecutionFailedError,
    ServerlessBrowserUnavailableError,
    StartupFailedError,
    UnsupportedSelectorError,
)
from .extraction import ExtractionSpec, PageExtractor, SelectorField, extract_page_data
from .factory import create_driver
from .models import (
    ActionResult,
    BrowserFamily,
    DriverConfiguration,
    DriverEngine,
    DriverState,
    LaunchPlan,
    NavigationResult,
    OutputDirectoryConfig,
    ViewportSize,
    WaitCondition,
)
from .output import OutputResourceManager, generate_filename
from .playwright_driver import PlaywrightAutomator
from .selector_resolver import LocatorDescriptor, LocatorKind, resolve_selector
from .waits import await_condition, retry, wait_until
from .webdriver_driver import WebDriverAutomator

__version__ = "0.1.0"

__all__ = [
    # Drivers
    "BrowserDriver",
    "PlaywrightAutomator",
    "WebDriverAutomator",
    "create_driver",
    "DriverLogger",
    "DriverSession",
    # Models
    "DriverConfiguration",
    "DriverEngine",
    "BrowserFamily",
    "DriverState",
    "ViewportSize",
    "WaitCondition",
    "NavigationResult",
    "ActionResult",
    "OutputDirectoryConfig",
    "LaunchPlan",
    # Selectors and waits
    "LocatorDescriptor",
    "LocatorKind",
    "resolve_selector",
    "await_condition",
    "retry",
    "wait_until",
    # Output
    "OutputResourceManager",
    "generate_filename",
    # Acquisition
    "acquire_launch_plan",
    "is_serverless_sandbox",
    "ServerlessBrowser",
    "ServerlessBrowserResolver",
    "LayerBrowserResolver",
    # Extraction
    "PageExtractor",
    "ExtractionSpec",
    "SelectorField",
    "extract_page_data",
    # Configuration
    "ConfigReader",
    "driver_configuration_from",
    # Errors
    "AutomationError",
    "NotStartedError",
    "StartupFailedError",
    "ServerlessBrowserUnavailableError",
    "NavigationFailedError",
    "OperationTimeoutError",
    "ElementNotFoundError",
    "InteractionFailedError",
    "ScriptExecutionFailedError",
    "CaptureFailedError",
    "UnsupportedSelectorError",
    "ConfigurationError",
]
