"""
Page data extraction on top of any BrowserDriver.

Extractors run a single JavaScript function in the page through
``driver.evaluate`` so they behave identically on both engines. Selectors use
the same language as the drivers (CSS, ``#id``, ``.class``, XPath, ``attr=value``,
``text:``). The ``role=``, ``label=`` and ``placeholder=`` prefixes raise
UnsupportedSelectorError on both engines, whatever ``throw_on_error`` says.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Literal

from markdownify import markdownify
from pydantic import BaseModel, Field

from .driver import BrowserDriver
from .exceptions import AutomationError, UnsupportedSelectorError
from .selector_resolver import is_webdriver_unsupported, resolve_selector

_logger = logging.getLogger("automator.extraction")

# Shared prelude: resolves {css} / {xpath} queries to element arrays
_FIND_ALL = """
const findAll = (q, root) => {
  root = root || document;
  if (q.xpath) {
    const r = document.evaluate(q.xpath, root, null, XPathResult.ORDERED_NODE_SNAPSHOT_TYPE, null);
    return Array.from({length: r.snapshotLength}, (_, i) => r.snapshotItem(i));
  }
  return Array.from(root.querySelectorAll(q.css));
};
"""

EXTRACT_TEXTS_JS = (
    "(args) => {" + _FIND_ALL + "return findAll(args.query).map(el => el.textContent || '');}"
)

EXTRACT_ATTRIBUTES_JS = (
    "(args) => {" + _FIND_ALL + "return findAll(args.query).map(el => el.getAttribute(args.name));}"
)

EXTRACT_TABLE_JS = (
    "(args) => {"
    + _FIND_ALL
    + """
  const table = findAll(args.query)[0];
  if (!table) return null;
  const text = el => (el.textContent || '').trim();
  let headers = Array.from(table.querySelectorAll(args.headerSelector)).map(text);
  const rows = Array.from(table.querySelectorAll(args.rowSelector)).map(row =>
    Array.from(row.querySelectorAll(args.cellSelector)).map(text));
  return {headers, rows};
}"""
)

EXTRACT_FORM_JS = (
    "(args) => {"
    + _FIND_ALL
    + """
  const form = findAll(args.query)[0];
  if (!form) return null;
  const data = {};
  form.querySelectorAll('input, select, textarea').forEach(field => {
    const name = field.getAttribute('name') || field.getAttribute('id');
    if (!name) return;
    const tag = field.tagName.toLowerCase();
    const type = (field.getAttribute('type') || 'text').toLowerCase();
    if (tag === 'input' && (type === 'checkbox' || type === 'radio')) {
      data[name] = field.checked;
    } else if (tag === 'input' && type === 'file') {
      data[name] = '[file input]';
    } else if (tag === 'select') {
      const option = field.querySelector('option:checked');
      data[name] = option ? (option.getAttribute('value') || option.textContent.trim()) : null;
    } else {
      data[name] = field.value;
    }
  });
  return data;
}"""
)

EXTRACT_LINKS_JS = (
    "(args) => {"
    + _FIND_ALL
    + """
  const origin = window.location.origin;
  const links = [];
  findAll(args.query).forEach(container => {
    container.querySelectorAll('a[href]').forEach(a => {
      const href = new URL(a.getAttribute('href'), window.location.href).href;
      links.push({
        href,
        text: (a.textContent || '').trim(),
        title: a.getAttribute('title') || '',
        target: a.getAttribute('target') || '',
        is_external: !href.startsWith(origin),
      });
    });
  });
  return links;
}"""
)

EXTRACT_IMAGES_JS = (
    "(args) => {"
    + _FIND_ALL
    + """
  const images = [];
  findAll(args.query).forEach(container => {
    container.querySelectorAll('img').forEach(img => {
      const src = img.getAttribute('src');
      if (!src) return;
      const size = v => (v && !isNaN(parseInt(v, 10)) ? parseInt(v, 10) : null);
      images.push({
        src: new URL(src, window.location.href).href,
        alt: img.getAttribute('alt') || '',
        title: img.getAttribute('title') || '',
        width: size(img.getAttribute('width')),
        height: size(img.getAttribute('height')),
      });
    });
  });
  return images;
}"""
)

EXTRACT_METADATA_JS = """(args) => {
  const meta = {};
  document.querySelectorAll('meta').forEach(m => {
    const name = m.getAttribute('name') || m.getAttribute('property');
    const content = m.getAttribute('content');
    if (name && content) meta[name] = content;
  });
  const result = {title: document.title, url: window.location.href, meta};
  if (args.structuredData) {
    result.structured_data = Array.from(
      document.querySelectorAll('script[type="application/ld+json"]')
    ).map(s => { try { return JSON.parse(s.textContent); } catch (e) { return null; } })
     .filter(d => d !== null);
  }
  return result;
}"""

READ_CONTENT_JS = """(format) => {
  if (format === 'text') return document.body ? document.body.innerText : '';
  return document.documentElement.outerHTML;
}"""


def _query(selector: str, engine: str) -> dict[str, str]:
    # role=, label= and placeholder= need Playwright's selector engines, which
    # page scripts cannot reach
    if is_webdriver_unsupported(selector):
        raise UnsupportedSelectorError(selector, engine)
    descriptor = resolve_selector(selector)
    if descriptor.is_xpath:
        return {"xpath": descriptor.value}
    return {"css": descriptor.to_css()}


def html_to_markdown(html: str) -> str:
    """Convert HTML to markdown (ATX headings, ``-`` bullets, chrome stripped)"""
    return markdownify(
        html,
        heading_style="ATX",
        bullets="-",
        strip=["script", "style", "nav", "footer", "header", "noscript"],
    )


class PageExtractor:
    """
    Structured extraction helpers.

    Every method takes ``throw_on_error``: when False, failures are logged and
    the empty shape for that method is returned instead of raising.

    Example:
        extractor = PageExtractor(driver)
        prices = await extractor.extract_texts(".price")
        table = await extractor.extract_table("#results")
    """

    def __init__(self, driver: BrowserDriver, logger: Any = None):
        self.driver = driver
        self.logger = logger or _logger

    async def _run(self, label: str, script: str, arg: Any, empty: Any, throw_on_error: bool) -> Any:
        try:
            return await self.driver.evaluate(script, arg)
        except (AutomationError, ValueError) as e:
            self.logger.error(f"{label} failed: {e}")
            if throw_on_error:
                raise
            return empty

    async def extract_texts(
        self, selector: str, trim: bool = True, throw_on_error: bool = True
    ) -> list[str]:
        texts = await self._run(
            f"Text extraction for {selector}",
            EXTRACT_TEXTS_JS,
            {"query": _query(selector, self.driver.engine.value)},
            [],
            throw_on_error,
        )
        texts = [text.strip() for text in texts] if trim else list(texts)
        self.logger.info(f"Extracted {len(texts)} text values from: {selector}")
        return texts

    async def extract_attributes(
        self, selector: str, name: str, throw_on_error: bool = True
    ) -> list[str]:
        """Attribute values of every match; elements without the attribute are skipped"""
        values = await self._run(
            f"Attribute extraction for {selector}.{name}",
            EXTRACT_ATTRIBUTES_JS,
            {"query": _query(selector, self.driver.engine.value), "name": name},
            [],
            throw_on_error,
        )
        return [value for value in values if value is not None]

    async def extract_table(
        self,
        table_selector: str,
        header_selector: str = "thead th",
        row_selector: str = "tbody tr",
        cell_selector: str = "td",
        throw_on_error: bool = True,
    ) -> dict[str, Any]:
        """
        Table rows as dicts keyed by header text.

        Returns:
            {"headers": [...], "rows": [{header: cell}], "row_count": n, "column_count": m}
        """
        empty = {"headers": [], "rows": [], "row_count": 0, "column_count": 0}
        raw = await self._run(
            f"Table extraction for {table_selector}",
            EXTRACT_TABLE_JS,
            {
                "query": _query(table_selector, self.driver.engine.value),
                "headerSelector": header_selector,
                "rowSelector": row_selector,
                "cellSelector": cell_selector,
            },
            None,
            throw_on_error,
        )
        if not raw or not raw.get("headers"):
            message = f"No table headers found: {table_selector}"
            self.logger.error(message)
            if throw_on_error:
                raise AutomationError(message, selector=table_selector)
            return empty

        headers = raw["headers"]
        rows = []
        for cells in raw["rows"]:
            rows.append(
                {headers[i] or f"column_{i}": cell for i, cell in enumerate(cells[: len(headers)])}
            )
        self.logger.info(f"Extracted table data: {len(headers)} columns, {len(rows)} rows")
        return {
            "headers": headers,
            "rows": rows,
            "row_count": len(rows),
            "column_count": len(headers),
        }

    async def extract_form_data(self, form_selector: str, throw_on_error: bool = True) -> dict[str, Any]:
        data = await self._run(
            f"Form data extraction for {form_selector}",
            EXTRACT_FORM_JS,
            {"query": _query(form_selector, self.driver.engine.value)},
            {},
            throw_on_error,
        )
        if data is None:
            message = f"Form not found: {form_selector}"
            self.logger.error(message)
            if throw_on_error:
                raise AutomationError(message, selector=form_selector)
            return {}
        return data

    async def extract_links(self, container_selector: str = "body", throw_on_error: bool = True) -> list[dict]:
        links = await self._run(
            f"Link extraction for {container_selector}",
            EXTRACT_LINKS_JS,
            {"query": _query(container_selector, self.driver.engine.value)},
            [],
            throw_on_error,
        )
        self.logger.info(f"Extracted {len(links)} links from: {container_selector}")
        return links

    async def extract_images(self, container_selector: str = "body", throw_on_error: bool = True) -> list[dict]:
        images = await self._run(
            f"Image extraction for {container_selector}",
            EXTRACT_IMAGES_JS,
            {"query": _query(container_selector, self.driver.engine.value)},
            [],
            throw_on_error,
        )
        self.logger.info(f"Extracted {len(images)} images from: {container_selector}")
        return images

    async def extract_page_metadata(
        self, include_structured_data: bool = False, throw_on_error: bool = True
    ) -> dict[str, Any]:
        empty = {"title": "", "url": "", "meta": {}}
        if include_structured_data:
            empty["structured_data"] = []
        metadata = await self._run(
            "Page metadata extraction",
            EXTRACT_METADATA_JS,
            {"structuredData": include_structured_data},
            empty,
            throw_on_error,
        )
        metadata["timestamp"] = datetime.now(timezone.utc).isoformat()
        return metadata

    async def read_content(
        self, format: Literal["raw", "text", "markdown"] = "raw", throw_on_error: bool = True  # noqa: A002
    ) -> dict[str, Any]:
        """
        Read page content as raw HTML, text, or markdown.

        Returns:
            dict with url, format, content and length
        """
        if format not in ("raw", "text", "markdown"):
            raise ValueError(f"Unknown content format: {format}")
        content = await self._run(
            f"Read ({format})",
            READ_CONTENT_JS,
            "text" if format == "text" else "raw",
            "",
            throw_on_error,
        )
        if format == "markdown" and content:
            content = html_to_markdown(content)
        return {
            "url": await self.driver.get_current_url(),
            "format": format,
            "content": content,
            "length": len(content),
        }


class SelectorField(BaseModel):
    name: str
    selector: str
    attribute: str = "textContent"


class ExtractionSpec(BaseModel):
    """What ``extract_page_data`` collects"""

    heading: bool = True
    heading_selector: str = "h1"
    selectors: list[SelectorField] = Field(default_factory=list)
    metadata: bool = True
    custom_script: str | None = None
    timeout_ms: int | None = None


async def extract_page_data(
    driver: BrowserDriver, spec: ExtractionSpec | dict | None = None, logger: Any = None
) -> dict[str, Any]:
    """
    Run an extraction specification against the current page.

    Per-field failures are logged and recorded as None so one missing element
    does not lose the rest of the result.

    Returns:
        JSON-serialisable dict: page_title, current_url, and optionally
        main_heading, custom_data, metadata, custom_script_result
    """
    log = logger or _logger
    if spec is None:
        spec = ExtractionSpec()
    elif isinstance(spec, dict):
        spec = ExtractionSpec.model_validate(spec)

    data: dict[str, Any] = {
        "page_title": await driver.get_title(),
        "current_url": await driver.get_current_url(),
    }

    if spec.heading:
        try:
            data["main_heading"] = await driver.get_text(spec.heading_selector, spec.timeout_ms)
            log.info(f'Extracted heading: "{data["main_heading"]}"')
        except Exception as e:
            log.warning(f"Could not extract heading: {e}")
            data["main_heading"] = None

    if spec.selectors:
        custom: dict[str, Any] = {}
        for field in spec.selectors:
            try:
                if field.attribute == "textContent":
                    custom[field.name] = await driver.get_text(field.selector, spec.timeout_ms)
                else:
                    custom[field.name] = await driver.get_attribute(
                        field.selector, field.attribute, spec.timeout_ms
                    )
            except Exception as e:
                log.warning(f"Could not extract {field.name} with selector {field.selector}: {e}")
                custom[field.name] = None
        data["custom_data"] = custom

    if spec.metadata:
        try:
            source = await driver.get_page_source()
            data["metadata"] = {
                "content_length": len(source),
                "has_javascript": "<script" in source,
                "has_css": "<style" in source or ".css" in source,
                "extracted_at": datetime.now(timezone.utc).isoformat(),
            }
        except Exception as e:
            log.warning(f"Could not extract metadata: {e}")
            data["metadata"] = None

    if spec.custom_script:
        try:
            data["custom_script_result"] = await driver.execute_script(spec.custom_script)
        except Exception as e:
            log.warning(f"Custom script execution failed: {e}")
            data["custom_script_result"] = None

    return data
