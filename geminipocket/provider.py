"""Google Generative Language API translation used by the relay.

Behavior:
- Images are generated synchronously with ``models/<image_model>:generateContent``.
- Videos are long-running operations: ``models/<video_model>:predictLongRunning``
  returns an operation ``name`` which is later polled at ``v1beta/<name>``.
- Every non-2xx answer is classified with ``classify_provider_error``; network
  failures become ``TransportError`` and missing fields ``ProtocolError``.
"""
import base64
import logging
from dataclasses import dataclass
from typing import Optional, Union

import requests

from .errors import ProtocolError, RetrievalError, TransportError, classify_provider_error
from .operation import PollStatus

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image-preview"
DEFAULT_VIDEO_MODEL = "veo-3.0-generate-preview"

NO_RESULT_MESSAGE = "no result in completed operation"


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ImagePart:
    mime_type: str
    data: str


ResponsePart = Union[TextPart, ImagePart]


def decode_part(raw: dict) -> ResponsePart:
    """Decode one ``content.parts`` entry by which key is present."""
    if not isinstance(raw, dict):
        raise ProtocolError(f"Unexpected response part: {raw!r}")
    inline = raw.get("inlineData") or raw.get("inline_data")
    if inline is not None:
        if not isinstance(inline, dict) or not inline.get("data"):
            raise ProtocolError("Image part is missing its data")
        mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
        return ImagePart(mime_type=mime_type, data=inline["data"])
    if "text" in raw:
        return TextPart(text=raw["text"])
    raise ProtocolError(f"Response part has neither text nor inlineData: {sorted(raw)}")


def extract_image(response: dict) -> ImagePart:
    candidates = response.get("candidates") or []
    if not candidates:
        raise ProtocolError("No candidates in Gemini response")
    for candidate in candidates:
        content = candidate.get("content") or {}
        for raw in content.get("parts") or []:
            part = decode_part(raw)
            if isinstance(part, ImagePart):
                logger.info("Found image data, length: %d", len(part.data))
                return part
    raise ProtocolError("No image data found in response")


@dataclass(frozen=True)
class VideoRequest:
    prompt: str
    negative_prompt: Optional[str] = None
    aspect_ratio: Optional[str] = None
    resolution: Optional[str] = None
    image: Optional[str] = None
    mime_type: Optional[str] = None

    def to_provider_body(self) -> dict:
        instance = {"prompt": self.prompt}
        if self.image:
            instance["image"] = {"bytesBase64Encoded": self.image, "mimeType": self.mime_type or "image/png"}
        parameters = {}
        if self.negative_prompt:
            parameters["negativePrompt"] = self.negative_prompt
        if self.aspect_ratio:
            parameters["aspectRatio"] = self.aspect_ratio
        if self.resolution:
            parameters["resolution"] = self.resolution
        body = {"instances": [instance]}
        if parameters:
            body["parameters"] = parameters
        return body


def normalize_operation(data: dict) -> PollStatus:
    """Turn a raw operation resource into the relay's tri-state status."""
    if not isinstance(data, dict):
        raise ProtocolError("Operation status is not a JSON object")
    if not data.get("done"):
        return PollStatus.pending()

    error = data.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else str(error)
        return PollStatus.failed(message or "Video generation failed")

    response = data.get("response") or {}
    if not isinstance(response, dict):
        raise ProtocolError("Operation response is not a JSON object")
    video_response = response.get("generateVideoResponse") or {}
    if not isinstance(video_response, dict):
        raise ProtocolError("generateVideoResponse is not a JSON object")
    samples = video_response.get("generatedSamples") or []
    reasons = video_response.get("raiMediaFilteredReasons") or []
    if not isinstance(samples, list) or not isinstance(reasons, list):
        raise ProtocolError("Malformed generateVideoResponse in operation")
    if not samples and reasons:
        return PollStatus.failed("Video blocked by safety filters: " + "; ".join(str(r) for r in reasons))

    for sample in samples:
        if not isinstance(sample, dict):
            raise ProtocolError(f"Unexpected generated sample: {sample!r}")
        video = sample.get("video") or {}
        if not isinstance(video, dict):
            raise ProtocolError(f"Unexpected video entry: {video!r}")
        uri = video.get("uri")
        if uri:
            return PollStatus.succeeded(uri)
    return PollStatus.failed(NO_RESULT_MESSAGE)


class GeminiProvider:
    """Thin REST client for the provider, authenticated with ``x-goog-api-key``."""

    def __init__(self, api_key: str, base_url: str = DEFAULT_BASE_URL, image_model: str = DEFAULT_IMAGE_MODEL,
                 video_model: str = DEFAULT_VIDEO_MODEL, timeout: int = 60, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.image_model = image_model
        self.video_model = video_model
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        return {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        url = f"{self.base_url}/v1beta/{path.lstrip('/')}"
        try:
            resp = self.session.request(method, url, json=payload, headers=self._headers(), timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Provider call %s %s failed: %s", method, url, exc)
            raise TransportError(f"Failed to reach provider: {exc}") from exc

        if not resp.ok:
            try:
                error_info = resp.json()
            except ValueError:
                error_info = resp.text
            raise classify_provider_error(resp.status_code, error_info)

        logger.info("Provider %s %s -> %s (%d bytes)", method, path, resp.status_code, len(resp.content or b""))
        try:
            return resp.json()
        except ValueError as exc:
            raise ProtocolError("Provider returned a non-JSON response") from exc

    def generate_image(self, prompt: str) -> ImagePart:
        body = {"contents": [{"parts": [{"text": prompt}]}]}
        return extract_image(self._request("POST", f"models/{self.image_model}:generateContent", body))

    def edit_image(self, image: str, prompt: str, mime_type: str = "image/png") -> ImagePart:
        body = {"contents": [{"parts": [
            {"text": prompt},
            {"inline_data": {"mime_type": mime_type or "image/png", "data": image}},
        ]}]}
        return extract_image(self._request("POST", f"models/{self.image_model}:generateContent", body))

    def submit_video(self, request: VideoRequest) -> str:
        data = self._request("POST", f"models/{self.video_model}:predictLongRunning", request.to_provider_body())
        name = data.get("name") if isinstance(data, dict) else None
        if not name:
            raise ProtocolError("No operation name returned for video job")
        logger.info("Started video operation %s", name)
        return name

    def poll_video(self, operation_name: str) -> PollStatus:
        return normalize_operation(self._request("GET", operation_name))

    def fetch_artifact(self, uri: str) -> bytes:
        try:
            resp = self.session.get(uri, headers={"x-goog-api-key": self.api_key}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise RetrievalError(f"Failed to download artifact: {exc}") from exc
        if not resp.ok:
            raise RetrievalError(f"Failed to download artifact (HTTP {resp.status_code})")
        return resp.content

    def fetch_artifact_b64(self, uri: str) -> str:
        return base64.b64encode(self.fetch_artifact(uri)).decode("ascii")
