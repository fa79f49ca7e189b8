"""Small Flask app that imitates the Generative Language endpoints the relay uses.

Point the relay at it to exercise the whole submit/poll/download flow without
spending quota:
    python scripts/fake_veo_provider.py
    GEMINI_PROVIDER_URL=http://localhost:9091 GEMINI_API_KEY=dev geminipocket-relay

Each video operation reports `done: false` for FAKE_VEO_PENDING_POLLS polls
(default 1) and then finishes with a download URI served by this app. Prompts
containing "fail" finish with an operation error; prompts containing "empty"
finish without any generated samples. Every route, downloads included, answers
403 unless an `x-goog-api-key` header is sent.
"""
import base64
import hashlib
import os

from flask import Flask, jsonify, request

app = Flask(__name__)

# 1x1 transparent PNG
PNG_PIXEL = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)
FAKE_MP4 = b"\x00\x00\x00\x18ftypmp42\x00\x00\x00\x00mp42isom" + b"\x00" * 64

_operations = {}


def _pending_polls() -> int:
    return int(os.getenv("FAKE_VEO_PENDING_POLLS", "1"))


def _error(code: int, status: str, message: str):
    return jsonify({"error": {"code": code, "message": message, "status": status}}), code


@app.before_request
def check_key():
    if not request.headers.get("x-goog-api-key"):
        return _error(403, "PERMISSION_DENIED", "Method doesn't allow unregistered callers.")


@app.route("/v1beta/models/<model>:generateContent", methods=["POST"])
def generate_content(model):
    payload = request.get_json(silent=True) or {}
    parts = ((payload.get("contents") or [{}])[0]).get("parts") or []
    if not any(p.get("text") for p in parts):
        return _error(400, "INVALID_ARGUMENT", "contents.parts must contain text")
    return jsonify({"candidates": [{"content": {"parts": [
        {"text": "Here is your image"},
        {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(PNG_PIXEL).decode("ascii")}},
    ]}, "finishReason": "STOP"}]})


@app.route("/v1beta/models/<model>:predictLongRunning", methods=["POST"])
def predict_long_running(model):
    payload = request.get_json(silent=True) or {}
    instance = (payload.get("instances") or [{}])[0]
    prompt = instance.get("prompt") or ""
    if not prompt:
        return _error(400, "INVALID_ARGUMENT", "instances[0].prompt is required")

    op_id = hashlib.sha1((model + prompt + str(len(_operations))).encode("utf-8")).hexdigest()[:12]
    name = f"models/{model}/operations/{op_id}"
    _operations[name] = {"prompt": prompt, "polls": 0}
    return jsonify({"name": name})


@app.route("/v1beta/models/<model>/operations/<op_id>", methods=["GET"])
def get_operation(model, op_id):
    name = f"models/{model}/operations/{op_id}"
    op = _operations.get(name)
    if op is None:
        return _error(404, "NOT_FOUND", f"Operation {name} not found")

    op["polls"] += 1
    if op["polls"] <= _pending_polls():
        return jsonify({"name": name})

    if "fail" in op["prompt"]:
        return jsonify({"name": name, "done": True, "error": {"code": 3, "message": "Video generation failed"}})
    if "empty" in op["prompt"]:
        return jsonify({"name": name, "done": True, "response": {"generateVideoResponse": {}}})

    uri = f"{request.host_url}files/{op_id}:download?alt=media"
    return jsonify({"name": name, "done": True, "response": {
        "@type": "type.googleapis.com/google.ai.generativelanguage.v1beta.PredictLongRunningResponse",
        "generateVideoResponse": {"generatedSamples": [{"video": {"uri": uri}}]},
    }})


@app.route("/files/<op_id>:download", methods=["GET"])
def download(op_id):
    return FAKE_MP4, 200, {"Content-Type": "video/mp4"}


if __name__ == "__main__":
    port = int(os.getenv("FAKE_VEO_PORT", "9091"))
    app.run(host="0.0.0.0", port=port)
