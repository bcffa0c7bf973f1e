"""Installer downloads for the Wan2GP bootstrap.

Downloads go to a temporary directory owned by the caller's context
manager, so nothing is left behind on success or failure.
"""

import shutil
import tempfile
import urllib.parse
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import requests

from env_config import DOWNLOAD_TIMEOUT

from .errors import DownloadError
from .utils import BROWSER_USER_AGENT, print_info

CHUNK_SIZE = 8192


@contextmanager
def download_workspace(prefix: str = "wan2gp-") -> Iterator[Path]:
    """Temporary download directory, removed on exit."""
    workdir = Path(tempfile.mkdtemp(prefix=prefix))
    try:
        yield workdir
    finally:
        shutil.rmtree(workdir, ignore_errors=True)


def filename_from_url(url: str) -> str:
    name = Path(urllib.parse.urlparse(url).path).name
    return name or "download.bin"


def download_file(url: str, dest_dir: Path, timeout: float = DOWNLOAD_TIMEOUT, quiet: bool = False) -> Path:
    """Download ``url`` into ``dest_dir``.

    Args:
        url: Source URL (http or https)
        dest_dir: Existing directory to write into
        timeout: Socket timeout in seconds
        quiet: Suppress progress output

    Returns:
        Path to the downloaded file

    Raises:
        DownloadError: On non-2xx status or transport failure. Any partial
            file is removed before raising.
    """
    dest = Path(dest_dir) / filename_from_url(url)

    try:
        with requests.get(url, stream=True, timeout=timeout,
                          headers={"User-Agent": BROWSER_USER_AGENT}) as response:
            response.raise_for_status()

            total_size = int(response.headers.get('content-length') or 0)
            downloaded = 0
            last_print_len = 0

            with open(dest, "wb") as out_file:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if not chunk:
                        continue
                    out_file.write(chunk)
                    downloaded += len(chunk)

                    if quiet:
                        continue
                    mb_downloaded = downloaded / (1024 * 1024)
                    if total_size > 0:
                        pct = (downloaded / total_size) * 100
                        mb_total = total_size / (1024 * 1024)
                        msg = f"\r    Progress: {pct:.1f}% ({mb_downloaded:.1f}/{mb_total:.1f} MB)"
                    else:
                        msg = f"\r    Downloaded: {mb_downloaded:.1f} MB"
                    padding = " " * max(0, last_print_len - len(msg))
                    print(msg + padding, end='', flush=True)
                    last_print_len = len(msg)

            if not quiet and last_print_len:
                print()

            if total_size and downloaded < total_size:
                raise DownloadError(
                    f"Incomplete download of {url}: {downloaded} of {total_size} bytes",
                    f"URL: {url}"
                )

    except DownloadError:
        dest.unlink(missing_ok=True)
        raise
    except requests.exceptions.HTTPError as e:
        dest.unlink(missing_ok=True)
        raise DownloadError(
            f"HTTP {e.response.status_code} while downloading {url}", f"URL: {url}"
        ) from e
    except (requests.exceptions.RequestException, OSError) as e:
        dest.unlink(missing_ok=True)
        raise DownloadError(f"Failed to download {url}: {e}", f"URL: {url}") from e

    if not quiet:
        print_info(f"Downloaded {dest.name}")
    return dest
