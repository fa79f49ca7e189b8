"""Write generated images and videos to disk with timestamped names."""
import base64
import binascii
import datetime
import logging
import os
from pathlib import Path
from typing import Optional

import requests

from .errors import RetrievalError

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_NAME = "gemini_image"
DEFAULT_VIDEO_NAME = "gemini_video"


def _timestamp() -> str:
    return datetime.datetime.now().strftime("%Y%m%d_%H%M%S")


def resolve_output_dir(output_dir: Optional[str], save_to_current: bool, kind: str = "image") -> Path:
    if save_to_current:
        return Path(".")
    if output_dir:
        return Path(output_dir).expanduser()
    home = Path.home()
    candidates = [home / "Videos", home / "Pictures"] if kind == "video" else [home / "Pictures"]
    for candidate in candidates:
        if candidate.is_dir():
            return candidate
    return Path(".")


def output_path(output_dir: Path, name: Optional[str], default_name: str, suffix: str) -> Path:
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RetrievalError(f"Cannot use output directory {output_dir}: {exc}") from exc
    return output_dir / f"{name or default_name}_{_timestamp()}{suffix}"


def _decode(data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise RetrievalError(f"Artifact is not valid base64: {exc}") from exc


def _write(path: Path, data: bytes) -> Path:
    try:
        with open(path, "wb") as f:
            f.write(data)
    except OSError as exc:
        _remove_partial(path)
        raise RetrievalError(f"Failed to write {path}: {exc}") from exc
    logger.info("Wrote %d bytes to %s", len(data), path)
    return path


def save_image(base64_data: str, output_dir: Optional[str] = None, name: Optional[str] = None,
               save_to_current: bool = False) -> Path:
    image_bytes = _decode(base64_data)
    path = output_path(resolve_output_dir(output_dir, save_to_current, "image"), name, DEFAULT_IMAGE_NAME, ".png")
    return _write(path, image_bytes)


def save_inline_video(base64_data: str, output_dir: Optional[str] = None, name: Optional[str] = None,
                      save_to_current: bool = False) -> Path:
    video_bytes = _decode(base64_data)
    path = output_path(resolve_output_dir(output_dir, save_to_current, "video"), name, DEFAULT_VIDEO_NAME, ".mp4")
    return _write(path, video_bytes)


def save_video(video_uri: str, output_dir: Optional[str] = None, name: Optional[str] = None,
               save_to_current: bool = False, provider_api_key: Optional[str] = None,
               session: Optional[requests.Session] = None, timeout: int = 300) -> Path:
    """Stream a finished video from the provider to a local .mp4 file.

    Google-hosted video URIs need the provider key; it is sent as
    ``x-goog-api-key`` when one is configured.
    """
    session = session or requests.Session()
    headers = {"x-goog-api-key": provider_api_key} if provider_api_key else {}
    path = output_path(resolve_output_dir(output_dir, save_to_current, "video"), name, DEFAULT_VIDEO_NAME, ".mp4")

    logger.info("Downloading video: %s", video_uri)
    try:
        with session.get(video_uri, headers=headers, stream=True, timeout=timeout) as resp:
            if not resp.ok:
                raise RetrievalError(f"Video download failed with status: {resp.status_code}")
            with open(path, "wb") as f:
                for chunk in resp.iter_content(chunk_size=1024 * 1024):
                    if chunk:
                        f.write(chunk)
    except requests.RequestException as exc:
        _remove_partial(path)
        raise RetrievalError(f"Video download failed: {exc}") from exc
    except OSError as exc:
        _remove_partial(path)
        raise RetrievalError(f"Failed to write {path}: {exc}") from exc
    except RetrievalError:
        _remove_partial(path)
        raise

    logger.info("Downloaded video to %s", path)
    return path


def _remove_partial(path: Path):
    try:
        if path.exists():
            os.remove(path)
    except OSError as e:
        logger.warning(f"Failed to delete partial download {path}: {e}")
