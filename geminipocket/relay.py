"""Flask relay that exposes a small JSON contract in front of Google's APIs.

Usage:
  - Configure environment variables: GEMINI_API_KEY, (optional) GEMINI_VIDEO_MODEL,
    GEMINI_IMAGE_MODEL, USER_STORE_PATH / USER_DB_URL
  - Run: `geminipocket-relay` (or `python -m geminipocket.relay`)
  - Register once with POST /register, then send `Authorization: Bearer <api_key>`
    to the generation endpoints.

The relay keeps no job state: a video job is started with POST /generate_video,
which returns the provider's operation name, and every GET /video_status/<name>
asks the provider again.
"""
import functools
import logging
import sys
import time
from typing import Optional

from flask import Flask, current_app, g, jsonify, request

from . import __version__
from .config import RelaySettings
from .errors import AuthError, GeminiPocketError, InvalidRequest
from .openapi import SWAGGER_UI_HTML, openapi_spec
from .provider import GeminiProvider, VideoRequest
from .user_store import UserStore

logger = logging.getLogger(__name__)

INVALID_BODY = "Invalid request body"
TRUTHY = ("1", "true", "yes")


class ProviderNotConfigured(GeminiPocketError):
    http_status = 500


def _provider() -> GeminiProvider:
    provider = current_app.extensions["geminipocket.provider"]
    if provider is None:
        raise ProviderNotConfigured("API key not configured")
    return provider


def _store() -> UserStore:
    return current_app.extensions["geminipocket.store"]


def _json_body(*required: str) -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise InvalidRequest(INVALID_BODY)
    for name in required:
        value = payload.get(name)
        if not isinstance(value, str) or not value.strip():
            raise InvalidRequest(INVALID_BODY)
    for name, value in payload.items():
        if value is not None and not isinstance(value, str):
            raise InvalidRequest(INVALID_BODY)
    return payload


def require_api_key(endpoint):
    @functools.wraps(endpoint)
    def wrapper(*args, **kwargs):
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            logger.warning("Rejected %s: missing bearer token", request.path)
            raise AuthError("Missing or invalid API key")
        email = _store().verify_api_key(token.strip())
        if email is None:
            logger.warning("Rejected %s: unknown API key", request.path)
            raise AuthError("Missing or invalid API key")
        g.user_email = email
        return endpoint(*args, **kwargs)

    return wrapper


def _video_request(payload: dict, with_image: bool) -> VideoRequest:
    return VideoRequest(
        prompt=payload["prompt"],
        negative_prompt=payload.get("negative_prompt") or None,
        aspect_ratio=payload.get("aspect_ratio") or None,
        resolution=payload.get("resolution") or None,
        image=payload.get("image") if with_image else None,
        mime_type=(payload.get("mime_type") or "image/png") if with_image else None,
    )


def create_app(settings: Optional[RelaySettings] = None, store: Optional[UserStore] = None,
               provider: Optional[GeminiProvider] = None) -> Flask:
    settings = settings or RelaySettings.from_env()
    if store is None:
        store = UserStore(path=settings.user_store_path, db_url=settings.user_db_url)
    if provider is None and settings.gemini_api_key:
        provider = GeminiProvider(
            settings.gemini_api_key,
            base_url=settings.provider_base_url,
            image_model=settings.image_model,
            video_model=settings.video_model,
            timeout=settings.provider_timeout,
        )
    if provider is None:
        logger.warning("GEMINI_API_KEY is not set; generation endpoints will fail")

    app = Flask(__name__)
    app.extensions["geminipocket.settings"] = settings
    app.extensions["geminipocket.store"] = store
    app.extensions["geminipocket.provider"] = provider

    @app.errorhandler(GeminiPocketError)
    def handle_error(exc: GeminiPocketError):
        logger.info("%s %s failed: %s", request.method, request.path, exc.message)
        return jsonify(exc.to_dict()), exc.http_status

    @app.errorhandler(Exception)
    def handle_unexpected(exc: Exception):
        # HTTP errors raised by Flask itself (404, 405) keep their status
        code = getattr(exc, "code", None)
        if isinstance(code, int) and 400 <= code < 500:
            return jsonify({"success": False, "error": getattr(exc, "description", str(exc))}), code
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"success": False, "error": "Internal server error"}), 500

    @app.after_request
    def cors_headers(response):
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
        return response

    @app.route("/", methods=["GET"])
    def info():
        return jsonify({
            "name": "geminipocket",
            "version": settings.version,
            "endpoints": {
                "/generate": "Text-to-image generation",
                "/edit": "Image editing",
                "/generate_video": "Start text-to-video generation",
                "/edit_video": "Start image-to-video generation",
                "/video_status/{operation}": "Poll a video operation",
                "/register": "Create an account and API key",
                "/login": "Fetch the API key for an account",
                "/health": "Health check",
                "/docs": "Swagger UI",
                "/openapi": "OpenAPI specification",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"status": "healthy", "timestamp": int(time.time() * 1000)})

    @app.route("/openapi", methods=["GET"])
    def openapi():
        return jsonify(openapi_spec(settings.version, request.host_url))

    @app.route("/docs", methods=["GET"])
    def docs():
        return SWAGGER_UI_HTML, 200, {"Content-Type": "text/html; charset=utf-8"}

    @app.route("/register", methods=["POST"])
    def register():
        payload = _json_body("email", "password")
        try:
            api_key = _store().register(payload["email"], payload["password"])
        except ValueError as exc:
            raise InvalidRequest(str(exc)) from exc
        return jsonify({"success": True, "api_key": api_key})

    @app.route("/login", methods=["POST"])
    def login():
        payload = _json_body("email", "password")
        return jsonify({"success": True, "api_key": _store().login(payload["email"], payload["password"])})

    @app.route("/generate", methods=["POST"])
    @require_api_key
    def generate():
        payload = _json_body("prompt")
        part = _provider().generate_image(payload["prompt"])
        return jsonify({"success": True, "image": part.data, "mime_type": part.mime_type})

    @app.route("/edit", methods=["POST"])
    @require_api_key
    def edit():
        payload = _json_body("prompt", "image")
        part = _provider().edit_image(payload["image"], payload["prompt"], payload.get("mime_type") or "image/png")
        return jsonify({"success": True, "image": part.data, "mime_type": part.mime_type})

    @app.route("/generate_video", methods=["POST"])
    @require_api_key
    def generate_video():
        payload = _json_body("prompt")
        name = _provider().submit_video(_video_request(payload, with_image=False))
        return jsonify({"success": True, "operation_name": name})

    @app.route("/edit_video", methods=["POST"])
    @require_api_key
    def edit_video():
        payload = _json_body("prompt", "image")
        name = _provider().submit_video(_video_request(payload, with_image=True))
        return jsonify({"success": True, "operation_name": name})

    @app.route("/video_status/<path:operation>", methods=["GET"])
    @require_api_key
    def video_status(operation: str):
        provider = _provider()
        status = provider.poll_video(operation)
        if not status.done:
            return jsonify({"success": True, "done": False})
        if status.error:
            return jsonify({"success": False, "done": True, "error": status.error})
        body = {"success": True, "done": True, "video_uri": status.result}
        if request.args.get("inline", "").lower() in TRUTHY:
            body["video"] = provider.fetch_artifact_b64(status.result)
        return jsonify(body)

    @app.route("/<path:_any>", methods=["OPTIONS"])
    def preflight(_any: str):
        return "", 204

    return app


def main(argv=None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Run the geminipocket relay")
    parser.add_argument("--host", help="Bind address (default RELAY_HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Port (default RELAY_PORT or 8787)")
    parser.add_argument("--env-file", dest="env_file", help="Path to a .env file")
    parser.add_argument("--debug", action="store_true", help="Enable Flask debug mode")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s", stream=sys.stderr)
    settings = RelaySettings.from_env(args.env_file)
    app = create_app(settings)
    logger.info("geminipocket relay %s listening on %s:%s", __version__, args.host or settings.host, args.port or settings.port)
    app.run(host=args.host or settings.host, port=args.port or settings.port, debug=args.debug)
    return 0


if __name__ == "__main__":
    sys.exit(main())
