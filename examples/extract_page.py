"""
Example: Structured extraction driven by a JSON config file

Reads driver settings from config.json (``automation`` section) or the
environment, e.g. AUTOMATION_ENGINE=webdriver AUTOMATION_HEADLESS=false.
"""

import asyncio
import json

from automator import (
    ConfigReader,
    ExtractionSpec,
    PageExtractor,
    SelectorField,
    create_driver,
    driver_configuration_from,
    extract_page_data,
)


async def main():
    reader = ConfigReader("config.json")
    config = driver_configuration_from(reader)
    url = reader.get("target_url", "https://example.com")

    async with create_driver(config) as driver:
        await driver.navigate_to(url)

        spec = ExtractionSpec(
            selectors=[
                SelectorField(name="intro", selector="p"),
                SelectorField(name="more_link", selector="a", attribute="href"),
            ],
            custom_script="return document.querySelectorAll('a').length;",
        )
        data = await extract_page_data(driver, spec)
        print(json.dumps(data, indent=2))

        extractor = PageExtractor(driver)
        links = await extractor.extract_links(throw_on_error=False)
        print(f"Links: {[link.get('href') for link in links]}")

        content = await extractor.read_content("markdown")
        print(content["content"][:500])


if __name__ == "__main__":
    asyncio.run(main())
