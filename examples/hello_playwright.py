"""
Example: Navigate, read and capture with the Playwright driver
"""

import asyncio

from automator import DriverConfiguration, PlaywrightAutomator


async def main():
    config = DriverConfiguration(headless=True, record_video=True)

    driver = PlaywrightAutomator(config)
    await driver.start()
    try:
        result = await driver.navigate_to("https://example.com")
        print(f"Loaded {result.url} (status={result.status}): {result.title}")

        heading = await driver.get_text("h1")
        print(f"Heading: {heading}")

        # Native selector engines are available on this driver
        if await driver.element_exists("role=link"):
            print("Found a link by role")

        path = await driver.take_screenshot("example.png")
        print(f"Screenshot: {path}")
    finally:
        video = await driver.quit(video_output_path="./output/videos/example.webm")
        print(f"Video: {video}")


if __name__ == "__main__":
    asyncio.run(main())
