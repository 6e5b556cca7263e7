"""
Error taxonomy for browser automation drivers.

Every error carries the selector / URL / script that caused it so a failure
can be diagnosed from the message alone.
"""


class AutomationError(Exception):
    """Base class for all driver errors"""

    def __init__(
        self,
        message: str,
        *,
        selector: str | None = None,
        url: str | None = None,
        script: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.selector = selector
        self.url = url
        self.script = script


class NotStartedError(AutomationError):
    """Operation attempted before start() or after quit()"""

    def __init__(self, operation: str):
        super().__init__(f"Driver not started. Call start() before {operation}().")
        self.operation = operation


class StartupFailedError(AutomationError):
    """Browser engine or binary could not be launched"""


class ServerlessBrowserUnavailableError(StartupFailedError):
    """Serverless sandbox detected but no serverless-capable browser binary is available"""


class NavigationFailedError(AutomationError):
    """Navigation failed on network error or timeout"""

    def __init__(self, url: str, reason: str, *, timed_out: bool = False):
        super().__init__(f"Failed to navigate to {url}: {reason}", url=url)
        self.timed_out = timed_out


class OperationTimeoutError(AutomationError):
    """Generic operation deadline exceeded. The session stays started."""

    def __init__(self, message: str, *, timeout_ms: int | None = None, **context):
        super().__init__(message, **context)
        self.timeout_ms = timeout_ms


class ElementNotFoundError(OperationTimeoutError):
    """No matching live element reached the wait condition within the timeout"""

    def __init__(
        self,
        selector: str,
        *,
        timeout_ms: int | None = None,
        condition: str = "present",
        last_error: BaseException | None = None,
    ):
        message = f"Element not found: {selector} (condition={condition}, timeout={timeout_ms}ms)"
        if last_error is not None:
            message += f". Last error: {last_error}"
        super().__init__(message, timeout_ms=timeout_ms, selector=selector)
        self.condition = condition
        self.last_error = last_error


class InteractionFailedError(AutomationError):
    """Element was targeted but the interaction failed after all attempts"""

    def __init__(
        self,
        action: str,
        selector: str,
        attempts: int,
        last_error: BaseException | None = None,
    ):
        message = f"Failed to {action} {selector} after {attempts} attempt(s)"
        if last_error is not None:
            message += f": {last_error}"
        super().__init__(message, selector=selector)
        self.action = action
        self.attempts = attempts
        self.last_error = last_error


class ScriptExecutionFailedError(AutomationError):
    """Script raised inside the page; the engine error is chained as __cause__"""

    def __init__(self, script: str, reason: str):
        excerpt = script.strip().replace("\n", " ")
        if len(excerpt) > 80:
            excerpt = excerpt[:77] + "..."
        super().__init__(f"Failed to execute script [{excerpt}]: {reason}", script=script)


class CaptureFailedError(AutomationError):
    """Screenshot or other artifact could not be captured or written"""


class UnsupportedSelectorError(AutomationError):
    """Selector syntax is not supported by the engine executing it"""

    def __init__(self, selector: str, engine: str):
        super().__init__(
            f"Selector '{selector}' is not supported by the {engine} driver", selector=selector
        )
        self.engine = engine


class ConfigurationError(AutomationError):
    """Configuration value missing, malformed, or not convertible"""
