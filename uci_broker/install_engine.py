"""Download a Stockfish release binary into ``bin/``."""

import os
import stat
import sys
from pathlib import Path
from typing import Optional

import requests

from . import config
from .utils import ReportingLevel, error_text, info_text, report

DOWNLOAD_TIMEOUT = 60
CHUNK_SIZE = 1 << 16


def release_url(platform: str = sys.platform) -> str:
    key = "linux" if platform.startswith("linux") else platform
    asset = config.STOCKFISH_RELEASE_ASSETS.get(key, config.STOCKFISH_RELEASE_ASSETS["linux"])
    return f"{config.STOCKFISH_DOWNLOAD_BASE}/{config.STOCKFISH_RELEASE}/{asset}"


def binary_path(platform: str = sys.platform, bin_dir: Optional[Path] = None) -> Path:
    name = "stockfish.exe" if platform == "win32" else "stockfish"
    return (bin_dir or config.BIN_DIR) / name


def install(platform: str = sys.platform, bin_dir: Optional[Path] = None) -> Path:
    """Fetch the release for ``platform``; a failed download leaves no file behind."""
    target = binary_path(platform, bin_dir)
    target.parent.mkdir(parents=True, exist_ok=True)
    url = release_url(platform)
    report(info_text(f"Downloading Stockfish for {platform}..."))
    report(info_text(f"URL: {url}"))
    report(info_text(f"Destination: {target}"))

    try:
        with requests.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT) as response:
            response.raise_for_status()
            with target.open("wb") as handle:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        handle.write(chunk)
    except (requests.RequestException, OSError) as exc:
        if target.exists():
            target.unlink()
        report(error_text(f"Download failed: {exc}"), ReportingLevel.QUIET)
        raise

    if platform != "win32":
        mode = os.stat(target).st_mode
        os.chmod(target, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    report(info_text("Installation complete; the engine is ready to use."))
    return target


if __name__ == "__main__":
    try:
        install()
    except (requests.RequestException, OSError):
        sys.exit(1)
