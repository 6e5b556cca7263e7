"""
Example: Same flow on Selenium WebDriver, with retrying interactions
"""

import asyncio
import logging

from automator import DriverConfiguration, InteractionFailedError, create_driver


async def main():
    logging.basicConfig(level=logging.INFO)

    config = DriverConfiguration(engine="webdriver", browser="chrome", retry_attempts=3)

    async with create_driver(config) as driver:
        await driver.navigate_to("https://example.com")
        print(f"Title: {await driver.get_title()}")

        try:
            result = await driver.safe_click("text:More information")
            print(f"Clicked after {result.attempts} attempt(s)")
        except InteractionFailedError as e:
            print(f"❌ Click failed: {e}")

        print(f"Now at: {await driver.get_current_url()}")
        await driver.go_back()

        png = await driver.take_screenshot()
        print(f"Captured {len(png)} bytes")


if __name__ == "__main__":
    asyncio.run(main())
