import base64
import logging
import os
from typing import Optional

import requests

from .errors import ProtocolError, RelayError, TransportError
from .operation import PollStatus

logger = logging.getLogger(__name__)

MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def detect_mime_type(path: str) -> str:
    return MIME_TYPES.get(os.path.splitext(str(path))[1].lower(), "image/jpeg")


def encode_image(path: str) -> tuple:
    """Read an image from disk and return ``(base64_data, mime_type)``."""
    with open(path, "rb") as f:
        data = f.read()
    return base64.b64encode(data).decode("ascii"), detect_mime_type(path)


class RelayClient:
    """HTTP client for the geminipocket relay.

    Every call returns the decoded JSON body on ``success: true``. A
    ``success: false`` envelope raises ``RelayError`` carrying the relay's
    message, network failures raise ``TransportError`` and bodies that are not
    JSON raise ``ProtocolError``.
    """

    def __init__(self, api_url: str, api_key: Optional[str] = None, timeout: int = 120,
                 session: Optional[requests.Session] = None):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self, auth: bool) -> dict:
        headers = {"Accept": "application/json"}
        if auth and self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _call(self, method: str, path: str, payload: Optional[dict] = None, params: Optional[dict] = None,
              auth: bool = True, what: str = "API request", accept_failure: bool = False) -> dict:
        url = f"{self.api_url}{path}"
        try:
            resp = self.session.request(method, url, json=payload, params=params, headers=self._headers(auth),
                                        timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransportError(f"{what} failed: {exc}") from exc

        try:
            data = resp.json()
        except ValueError:
            data = None

        if not isinstance(data, dict):
            if not resp.ok:
                raise RelayError(f"{what} failed with status: {resp.status_code}", status=resp.status_code)
            raise ProtocolError(f"{what} returned a non-JSON response")

        if not resp.ok or (data.get("success") is False and not accept_failure):
            raise RelayError(data.get("error") or f"{what} failed with status: {resp.status_code}",
                             status=resp.status_code)
        return data

    def register(self, email: str, password: str) -> str:
        data = self._call("POST", "/register", {"email": email, "password": password}, auth=False,
                          what="Registration")
        return self._require(data, "api_key")

    def login(self, email: str, password: str) -> str:
        data = self._call("POST", "/login", {"email": email, "password": password}, auth=False, what="Login")
        return self._require(data, "api_key")

    def health(self) -> dict:
        return self._call("GET", "/health", auth=False, what="Health check")

    def info(self) -> dict:
        return self._call("GET", "/", auth=False, what="API info")

    def generate_image(self, prompt: str) -> dict:
        data = self._call("POST", "/generate", {"prompt": prompt}, what="Image generation")
        self._require(data, "image")
        return data

    def edit_image(self, image_path: str, prompt: str) -> dict:
        image, mime_type = encode_image(image_path)
        data = self._call("POST", "/edit", {"prompt": prompt, "image": image, "mime_type": mime_type},
                          what="Image editing")
        self._require(data, "image")
        return data

    def generate_video(self, prompt: str, negative_prompt: Optional[str] = None, aspect_ratio: Optional[str] = None,
                       resolution: Optional[str] = None) -> str:
        payload = self._video_payload(prompt, negative_prompt, aspect_ratio, resolution)
        data = self._call("POST", "/generate_video", payload, what="Video generation")
        return self._require(data, "operation_name")

    def edit_video(self, image_path: str, prompt: str, negative_prompt: Optional[str] = None,
                   aspect_ratio: Optional[str] = None, resolution: Optional[str] = None) -> str:
        payload = self._video_payload(prompt, negative_prompt, aspect_ratio, resolution)
        payload["image"], payload["mime_type"] = encode_image(image_path)
        data = self._call("POST", "/edit_video", payload, what="Video editing")
        return self._require(data, "operation_name")

    def check_video_status(self, operation_name: str, inline: bool = False) -> PollStatus:
        params = {"inline": "1"} if inline else None
        data = self._call("GET", f"/video_status/{operation_name}", params=params, what="Status check",
                          accept_failure=True)
        if data.get("success") is False:
            # a finished-but-failed operation is a valid answer, not a failed call
            if data.get("done"):
                return PollStatus.failed(data.get("error") or "Video generation failed")
            raise RelayError(data.get("error") or "Status check failed", status=200)

        if not data.get("done"):
            return PollStatus.pending()
        uri = data.get("video_uri")
        if not uri:
            return PollStatus.failed("Video generation completed but no URI provided")
        return PollStatus.succeeded(uri, video=data.get("video"))

    @staticmethod
    def _video_payload(prompt, negative_prompt, aspect_ratio, resolution) -> dict:
        payload = {"prompt": prompt}
        if negative_prompt:
            payload["negative_prompt"] = negative_prompt
        if aspect_ratio:
            payload["aspect_ratio"] = aspect_ratio
        if resolution:
            payload["resolution"] = resolution
        return payload

    @staticmethod
    def _require(data: dict, key: str):
        value = data.get(key)
        if not value:
            raise ProtocolError(f"No {key} in response")
        return value
