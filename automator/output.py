"""
Output resource management - screenshot, video and download directories.

Relative base paths resolve against the project root so artifacts land in the
same place regardless of the caller's working directory.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .models import OutputDirectoryConfig

# automator/output.py -> project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_OUTPUT_DIRECTORY = "./output"
DEFAULT_DOWNLOADS_DIRECTORY = "./downloads"
DEFAULT_SCREENSHOTS_DIRECTORY = "screenshots"
DEFAULT_VIDEOS_DIRECTORY = "videos"

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"


def filename_timestamp(now: datetime | None = None) -> str:
    """Sortable UTC timestamp truncated to seconds, e.g. 2024-05-01_13-45-09"""
    moment = now or datetime.now(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def generate_filename(
    base_name: str, include_timestamp: bool = True, now: datetime | None = None
) -> str:
    """
    Insert a timestamp between the base name and its extension.

    Examples:
        generate_filename("page.png")        -> "page_2024-05-01_13-45-09.png"
        generate_filename("page.png", False) -> "page.png"
    """
    if not include_timestamp:
        return base_name
    path = Path(base_name)
    return f"{path.stem}_{filename_timestamp(now)}{path.suffix}"


class OutputResourceManager:
    """
    Resolves and creates artifact directories.

    Paths are recomputed on every call (never cached) so per-call overrides are
    honoured. Directory creation is idempotent.
    """

    def __init__(
        self,
        output_path: str | Path = DEFAULT_OUTPUT_DIRECTORY,
        downloads_path: str | Path = DEFAULT_DOWNLOADS_DIRECTORY,
        *,
        project_root: str | Path = PROJECT_ROOT,
        screenshots_directory: str = DEFAULT_SCREENSHOTS_DIRECTORY,
        videos_directory: str = DEFAULT_VIDEOS_DIRECTORY,
        logger: Any = None,
    ):
        self.project_root = Path(project_root)
        self.output_path = str(output_path)
        self.downloads_path = str(downloads_path)
        self.screenshots_directory = screenshots_directory
        self.videos_directory = videos_directory
        self.logger = logger or logging.getLogger("automator.output")

    def resolve(self, path: str | Path) -> Path:
        """Absolute path for ``path``, anchored at the project root when relative"""
        candidate = Path(path).expanduser()
        if candidate.is_absolute():
            return candidate
        return (self.project_root / candidate).resolve()

    @property
    def base_directory(self) -> Path:
        return self.resolve(self.output_path)

    def _ensure(self, directory: Path, label: str, create: bool) -> Path:
        if create:
            directory.mkdir(parents=True, exist_ok=True)
            self.logger.debug(f"{label} directory ready: {directory}")
        return directory

    def screenshots_dir(
        self,
        base_directory: str | Path | None = None,
        sub_directory: str | None = None,
        create: bool = True,
    ) -> Path:
        base = self.resolve(base_directory) if base_directory else self.base_directory
        return self._ensure(
            base / (sub_directory or self.screenshots_directory), "Screenshots", create
        )

    def videos_dir(
        self,
        base_directory: str | Path | None = None,
        sub_directory: str | None = None,
        create: bool = True,
    ) -> Path:
        base = self.resolve(base_directory) if base_directory else self.base_directory
        return self._ensure(base / (sub_directory or self.videos_directory), "Videos", create)

    def downloads_dir(self, downloads_path: str | Path | None = None, create: bool = True) -> Path:
        return self._ensure(self.resolve(downloads_path or self.downloads_path), "Download", create)

    def screenshot_path(
        self,
        filename: str,
        include_timestamp: bool = True,
        base_directory: str | Path | None = None,
        sub_directory: str | None = None,
        now: datetime | None = None,
    ) -> Path:
        """
        Destination for a screenshot file (directory is created).

        A missing extension defaults to ``.png``. Timestamped names that already
        exist get a ``-<n>`` counter so two captures in the same second do not
        overwrite each other; untimestamped names overwrite deterministically.
        """
        directory = self.screenshots_dir(base_directory, sub_directory)
        name = generate_filename(filename, include_timestamp, now)
        if not Path(name).suffix:
            name = f"{name}.png"
        target = directory / name

        if include_timestamp:
            counter = 1
            stem, suffix = target.stem, target.suffix
            while target.exists():
                target = directory / f"{stem}-{counter}{suffix}"
                counter += 1
        return target

    def directory_config(self) -> OutputDirectoryConfig:
        """Current resolved directories (nothing is created)"""
        return OutputDirectoryConfig(
            base_directory=self.base_directory,
            screenshots_directory=self.screenshots_dir(create=False),
            videos_directory=self.videos_dir(create=False),
            downloads_directory=self.downloads_dir(create=False),
        )
