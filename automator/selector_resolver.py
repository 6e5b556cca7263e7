"""
Selector resolution - maps a caller-supplied selector string to a locator strategy.

Resolution order (first match wins, the rules overlap):
    1. ``//...`` / ``(//...`` / ``xpath:...``  -> XPath
    2. ``#id``                                 -> ID
    3. ``.class``                              -> class name
    4. ``text:...`` / ``partial-text:...``     -> contains-based text XPath
    5. ``attr=value`` (no ``[``, no space)     -> attribute-equality CSS
    6. anything else                           -> CSS passthrough

Engines with their own selector engines can ask for native prefixes
(``role=``, ``label=``, ``placeholder=``, ``data-testid=``, ``text=``) to be
kept as ENGINE_NATIVE instead of being translated.
"""

from dataclasses import dataclass
from enum import Enum

TEXT_PREFIX = "text:"
PARTIAL_TEXT_PREFIX = "partial-text:"
XPATH_PREFIX = "xpath:"

NATIVE_PREFIXES = ("role=", "label=", "placeholder=", "data-testid=", "text=")

# Native prefixes with no WebDriver equivalent. data-testid= is translated instead.
WEBDRIVER_UNSUPPORTED_PREFIXES = ("role=", "label=", "placeholder=")


class LocatorKind(str, Enum):
    CSS = "css"
    XPATH = "xpath"
    ID = "id"
    CLASS_NAME = "class_name"
    ATTRIBUTE_EQUALS = "attribute_equals"
    TEXT_EXACT = "text_exact"
    TEXT_CONTAINS = "text_contains"
    ENGINE_NATIVE = "engine_native"


@dataclass(frozen=True)
class LocatorDescriptor:
    """
    Engine-agnostic description of how to find an element.

    Attributes:
        kind: Locator strategy
        value: Normalised payload (XPath expression, id, class name, CSS, or
               the native selector's argument)
        raw: Selector string as supplied (whitespace stripped)
        attribute: Attribute or native engine name for ATTRIBUTE_EQUALS /
                   ENGINE_NATIVE descriptors
    """

    kind: LocatorKind
    value: str
    raw: str
    attribute: str | None = None

    @property
    def is_xpath(self) -> bool:
        return self.kind in (LocatorKind.XPATH, LocatorKind.TEXT_EXACT, LocatorKind.TEXT_CONTAINS)

    def to_css(self) -> str | None:
        """CSS form of this descriptor, or None when it can only be expressed as XPath"""
        if self.kind == LocatorKind.CSS:
            return self.value
        if self.kind == LocatorKind.ID:
            return f'[id="{_escape_css_string(self.value)}"]'
        if self.kind == LocatorKind.CLASS_NAME:
            return "." + ".".join(part for part in self.value.split(".") if part)
        if self.kind == LocatorKind.ATTRIBUTE_EQUALS:
            return f'[{self.attribute}="{_escape_css_string(self.value)}"]'
        return None


def xpath_literal(value: str) -> str:
    """Quote a string for use inside an XPath expression"""
    if '"' not in value:
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"
    parts = value.split('"')
    return "concat(" + ", '\"', ".join(f'"{part}"' for part in parts) + ")"


def _escape_css_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def text_contains_xpath(text: str) -> str:
    return f"//*[contains(text(), {xpath_literal(text)})]"


def resolve_selector(raw: str, *, native: bool = False) -> LocatorDescriptor:
    """
    Resolve a selector string into a LocatorDescriptor.

    Pure and deterministic: the same input always yields an equal descriptor.

    Args:
        raw: Selector string (CSS, ``#id``, ``.class``, XPath, ``xpath:...``,
             ``attr=value``, ``text:...``)
        native: Keep engine-native prefixes as ENGINE_NATIVE descriptors
                (only for engines with their own selector engines)

    Returns:
        LocatorDescriptor

    Raises:
        ValueError: If the selector is empty or whitespace

    Note:
        ``text:`` and ``partial-text:`` both produce a contains() XPath, so
        ``text:Sign`` also matches "Sign in". This loose match is the
        long-standing behaviour and is kept deliberately.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError("Selector must be a non-empty string")
    selector = raw.strip()

    if native:
        for prefix in NATIVE_PREFIXES:
            if selector.startswith(prefix):
                return LocatorDescriptor(
                    kind=LocatorKind.ENGINE_NATIVE,
                    value=selector[len(prefix) :],
                    raw=selector,
                    attribute=prefix[:-1],
                )

    if selector.startswith("//") or selector.startswith("(//"):
        return LocatorDescriptor(kind=LocatorKind.XPATH, value=selector, raw=selector)

    if selector.startswith(XPATH_PREFIX):
        return LocatorDescriptor(
            kind=LocatorKind.XPATH, value=selector[len(XPATH_PREFIX) :].strip(), raw=selector
        )

    if selector.startswith("#"):
        return LocatorDescriptor(kind=LocatorKind.ID, value=selector[1:], raw=selector)

    if selector.startswith("."):
        return LocatorDescriptor(kind=LocatorKind.CLASS_NAME, value=selector[1:], raw=selector)

    if selector.startswith(TEXT_PREFIX):
        text = selector[len(TEXT_PREFIX) :]
        return LocatorDescriptor(
            kind=LocatorKind.TEXT_EXACT, value=text_contains_xpath(text), raw=selector
        )

    if selector.startswith(PARTIAL_TEXT_PREFIX):
        text = selector[len(PARTIAL_TEXT_PREFIX) :]
        return LocatorDescriptor(
            kind=LocatorKind.TEXT_CONTAINS, value=text_contains_xpath(text), raw=selector
        )

    if "=" in selector and "[" not in selector and " " not in selector:
        attribute, _, value = selector.partition("=")
        if attribute:
            return LocatorDescriptor(
                kind=LocatorKind.ATTRIBUTE_EQUALS,
                value=value.strip("\"'"),
                raw=selector,
                attribute=attribute,
            )

    return LocatorDescriptor(kind=LocatorKind.CSS, value=selector, raw=selector)


def is_webdriver_unsupported(raw: str) -> bool:
    """True for native selector prefixes WebDriver cannot express"""
    return raw.strip().startswith(WEBDRIVER_UNSUPPORTED_PREFIXES)
