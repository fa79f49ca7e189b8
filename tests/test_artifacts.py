import base64
import re
from pathlib import Path

import pytest
import requests

from geminipocket.artifacts import resolve_output_dir, save_image, save_inline_video, save_video
from geminipocket.client import detect_mime_type
from geminipocket.errors import RetrievalError


class DummyStream:
    def __init__(self, chunks, status_code=200, fail_after=None, failure=None):
        self.chunks = chunks
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self.fail_after = fail_after
        self.failure = failure or requests.ConnectionError("connection reset")

    def iter_content(self, chunk_size=None):
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i >= self.fail_after:
                raise self.failure
            yield chunk

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, resp):
        self.resp = resp
        self.calls = []

    def get(self, url, headers=None, stream=False, timeout=None):
        self.calls.append({"url": url, "headers": headers, "stream": stream})
        if isinstance(self.resp, Exception):
            raise self.resp
        return self.resp


def test_save_image_uses_timestamped_png_name(tmp_path):
    data = base64.b64encode(b"\x89PNG fake").decode("ascii")
    path = save_image(data, str(tmp_path / "out"), name="cat")
    assert re.fullmatch(r"cat_\d{8}_\d{6}\.png", path.name)
    assert path.read_bytes() == b"\x89PNG fake"


def test_save_image_default_name(tmp_path):
    path = save_image(base64.b64encode(b"x").decode("ascii"), str(tmp_path))
    assert path.name.startswith("gemini_image_")


def test_bad_base64_is_a_retrieval_error(tmp_path):
    with pytest.raises(RetrievalError):
        save_image("not base64!!", str(tmp_path))


def test_save_video_streams_with_provider_key(tmp_path):
    session = FakeSession(DummyStream([b"abc", b"def"]))
    path = save_video("https://provider/video/abc.mp4", str(tmp_path), provider_api_key="pk", session=session)
    assert path.name.startswith("gemini_video_") and path.suffix == ".mp4"
    assert path.read_bytes() == b"abcdef"
    assert session.calls[0]["headers"] == {"x-goog-api-key": "pk"}
    assert session.calls[0]["stream"] is True


def test_save_video_without_key_sends_no_auth(tmp_path):
    session = FakeSession(DummyStream([b"abc"]))
    save_video("https://cdn/video.mp4", str(tmp_path), session=session)
    assert session.calls[0]["headers"] == {}


def test_failed_download_leaves_no_file(tmp_path):
    session = FakeSession(DummyStream([b"abc"], status_code=403))
    with pytest.raises(RetrievalError, match="403"):
        save_video("https://provider/video/abc.mp4", str(tmp_path), session=session)
    assert list(tmp_path.iterdir()) == []

    session = FakeSession(DummyStream([b"abc", b"def"], fail_after=1))
    with pytest.raises(RetrievalError, match="connection reset"):
        save_video("https://provider/video/abc.mp4", str(tmp_path), session=session)
    assert list(tmp_path.iterdir()) == []


def test_network_error_before_response(tmp_path):
    session = FakeSession(requests.Timeout("timed out"))
    with pytest.raises(RetrievalError):
        save_video("https://provider/video/abc.mp4", str(tmp_path), session=session)


def test_inline_video(tmp_path):
    path = save_inline_video(base64.b64encode(b"mp4").decode("ascii"), str(tmp_path), name="clip")
    assert path.name.startswith("clip_") and path.read_bytes() == b"mp4"


def test_output_dir_resolution(tmp_path, monkeypatch):
    monkeypatch.setattr("pathlib.Path.home", lambda: tmp_path)
    assert str(resolve_output_dir(None, save_to_current=True)) == "."
    assert resolve_output_dir("/some/dir", save_to_current=False) == Path("/some/dir")
    assert str(resolve_output_dir(None, False, "video")) == "."
    (tmp_path / "Videos").mkdir()
    assert resolve_output_dir(None, False, "video") == tmp_path / "Videos"


def test_detect_mime_type():
    assert detect_mime_type("a.PNG") == "image/png"
    assert detect_mime_type("b.jpeg") == "image/jpeg"
    assert detect_mime_type("c.webp") == "image/webp"
    assert detect_mime_type("d.gif") == "image/gif"
    assert detect_mime_type("e.bmp") == "image/jpeg"


def test_output_dir_that_is_a_file(tmp_path):
    blocker = tmp_path / "out"
    blocker.write_text("not a directory")
    image = base64.b64encode(b"x").decode("ascii")

    with pytest.raises(RetrievalError, match="Cannot use output directory"):
        save_image(image, str(blocker))
    with pytest.raises(RetrievalError, match="Cannot use output directory"):
        save_inline_video(image, str(blocker / "nested"))

    session = FakeSession(DummyStream([b"abc"]))
    with pytest.raises(RetrievalError):
        save_video("https://provider/video/abc.mp4", str(blocker), session=session)
    assert session.calls == []


def test_disk_error_while_streaming_removes_partial_file(tmp_path):
    session = FakeSession(DummyStream([b"abc", b"def"], fail_after=1, failure=OSError(28, "No space left on device")))
    with pytest.raises(RetrievalError, match="No space left on device"):
        save_video("https://provider/video/abc.mp4", str(tmp_path), session=session)
    assert list(tmp_path.iterdir()) == []


def test_write_failure_is_a_retrieval_error(tmp_path, monkeypatch):
    def refuse(*args, **kwargs):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr("builtins.open", refuse)
    with pytest.raises(RetrievalError, match="Permission denied"):
        save_image(base64.b64encode(b"x").decode("ascii"), str(tmp_path))
