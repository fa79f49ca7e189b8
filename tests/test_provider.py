import pytest
import requests

from geminipocket.errors import ErrorCategory, ProtocolError, ProviderError, TransportError
from geminipocket.provider import (
    NO_RESULT_MESSAGE,
    GeminiProvider,
    ImagePart,
    TextPart,
    VideoRequest,
    decode_part,
    extract_image,
    normalize_operation,
)


class DummyResp:
    def __init__(self, data=None, status_code=200, text=None):
        self._data = data
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self.text = text if text is not None else ("" if data is None else str(data))
        self.content = self.text.encode("utf-8")

    def json(self):
        if self._data is None:
            raise ValueError("no json")
        return self._data


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "json": json, "headers": headers})
        resp = self.responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp

    def get(self, url, headers=None, timeout=None):
        return self.request("GET", url, headers=headers, timeout=timeout)


def make_provider(*responses):
    session = FakeSession(*responses)
    return GeminiProvider("test-key", session=session), session


def test_submit_translates_request_and_returns_name_verbatim():
    provider, session = make_provider(DummyResp({"name": "models/veo-3.0-generate-preview/operations/op_123"}))
    name = provider.submit_video(VideoRequest(prompt="a cat", negative_prompt="dogs", aspect_ratio="9:16",
                                              resolution="1080p"))

    assert name == "models/veo-3.0-generate-preview/operations/op_123"
    call = session.calls[0]
    assert call["method"] == "POST"
    assert call["url"].endswith("/v1beta/models/veo-3.0-generate-preview:predictLongRunning")
    assert call["headers"]["x-goog-api-key"] == "test-key"
    assert call["json"] == {
        "instances": [{"prompt": "a cat"}],
        "parameters": {"negativePrompt": "dogs", "aspectRatio": "9:16", "resolution": "1080p"},
    }


def test_edit_video_body_carries_image():
    body = VideoRequest(prompt="make it dance", image="aGVsbG8=", mime_type="image/jpeg").to_provider_body()
    assert body == {"instances": [{"prompt": "make it dance",
                                   "image": {"bytesBase64Encoded": "aGVsbG8=", "mimeType": "image/jpeg"}}]}


def test_submit_without_name_is_a_protocol_error():
    provider, _ = make_provider(DummyResp({"metadata": {}}))
    with pytest.raises(ProtocolError):
        provider.submit_video(VideoRequest(prompt="a cat"))


def test_submit_maps_provider_errors():
    body = {"error": {"code": 429, "message": "quota", "status": "RESOURCE_EXHAUSTED"}}
    provider, _ = make_provider(DummyResp(body, status_code=429))
    with pytest.raises(ProviderError) as info:
        provider.submit_video(VideoRequest(prompt="a cat"))
    assert info.value.category is ErrorCategory.RATE_LIMITED


def test_network_failure_is_a_transport_error():
    provider, _ = make_provider(requests.ConnectionError("connection refused"))
    with pytest.raises(TransportError):
        provider.poll_video("models/veo/operations/op_123")


def test_poll_uses_operation_name_as_path():
    provider, session = make_provider(DummyResp({"name": "models/veo/operations/op_123"}))
    status = provider.poll_video("models/veo/operations/op_123")
    assert not status.done
    assert session.calls[0]["method"] == "GET"
    assert session.calls[0]["url"].endswith("/v1beta/models/veo/operations/op_123")


def test_normalize_success():
    data = {"done": True, "response": {"generateVideoResponse": {
        "generatedSamples": [{"video": {"uri": "https://provider/video/abc.mp4"}}]}}}
    status = normalize_operation(data)
    assert status.done and status.result == "https://provider/video/abc.mp4" and status.error is None


def test_normalize_done_without_samples_is_an_error():
    status = normalize_operation({"done": True, "response": {"generateVideoResponse": {"generatedSamples": []}}})
    assert status.done and status.error == NO_RESULT_MESSAGE and status.result is None

    status = normalize_operation({"done": True})
    assert status.error == NO_RESULT_MESSAGE


def test_normalize_operation_error():
    status = normalize_operation({"done": True, "error": {"code": 13, "message": "internal failure"}})
    assert status.error == "internal failure"


def test_normalize_safety_filtered():
    data = {"done": True, "response": {"generateVideoResponse": {
        "raiMediaFilteredCount": 1, "raiMediaFilteredReasons": ["contains a child"]}}}
    assert normalize_operation(data).error == "Video blocked by safety filters: contains a child"


@pytest.mark.parametrize("response", [
    "not an object",
    {"generateVideoResponse": ["not", "an", "object"]},
    {"generateVideoResponse": {"generatedSamples": "abc"}},
    {"generateVideoResponse": {"generatedSamples": ["abc"]}},
    {"generateVideoResponse": {"generatedSamples": [{"video": "https://provider/video/abc.mp4"}]}},
])
def test_normalize_malformed_response_is_a_protocol_error(response):
    with pytest.raises(ProtocolError):
        normalize_operation({"done": True, "response": response})


def test_decode_part_is_tagged_by_present_field():
    assert decode_part({"text": "hello"}) == TextPart("hello")
    assert decode_part({"inlineData": {"mimeType": "image/png", "data": "AAA"}}) == ImagePart("image/png", "AAA")
    assert decode_part({"inline_data": {"mime_type": "image/webp", "data": "BBB"}}) == ImagePart("image/webp", "BBB")
    with pytest.raises(ProtocolError):
        decode_part({"functionCall": {}})
    with pytest.raises(ProtocolError):
        decode_part({"inlineData": {"mimeType": "image/png"}})


def test_extract_image_skips_text_parts():
    response = {"candidates": [{"content": {"parts": [
        {"text": "Here you go"},
        {"inlineData": {"mimeType": "image/png", "data": "iVBOR"}},
    ]}}]}
    assert extract_image(response).data == "iVBOR"


def test_extract_image_errors():
    with pytest.raises(ProtocolError, match="No candidates"):
        extract_image({"candidates": []})
    with pytest.raises(ProtocolError, match="No image data"):
        extract_image({"candidates": [{"content": {"parts": [{"text": "sorry"}]}}]})


def test_generate_image_request_shape():
    response = {"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": "iVBOR"}}]}}]}
    provider, session = make_provider(DummyResp(response))
    part = provider.generate_image("a cat")
    assert part.data == "iVBOR"
    assert session.calls[0]["url"].endswith("models/gemini-2.5-flash-image-preview:generateContent")
    assert session.calls[0]["json"] == {"contents": [{"parts": [{"text": "a cat"}]}]}
