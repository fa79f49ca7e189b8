"""OpenAPI document and Swagger UI page served by the relay."""

_ENVELOPE = {"$ref": "#/components/schemas/Envelope"}


def _json_body(schema_name: str) -> dict:
    return {
        "required": True,
        "content": {"application/json": {"schema": {"$ref": f"#/components/schemas/{schema_name}"}}},
    }


def _responses(ok_schema: str, *errors: int) -> dict:
    responses = {
        "200": {"description": "Success", "content": {"application/json": {"schema": {"$ref": f"#/components/schemas/{ok_schema}"}}}},
    }
    for code in errors:
        responses[str(code)] = {"description": "Error", "content": {"application/json": {"schema": _ENVELOPE}}}
    return responses


def openapi_spec(version: str, server_url: str = "/") -> dict:
    bearer = [{"bearerAuth": []}]
    return {
        "openapi": "3.1.0",
        "info": {
            "title": "geminipocket relay",
            "version": version,
            "description": "Relay for Google Gemini image generation and Veo video generation.",
        },
        "servers": [{"url": server_url}],
        "paths": {
            "/health": {"get": {"summary": "Health Check", "responses": _responses("Health")}},
            "/register": {"post": {"summary": "Register New User", "requestBody": _json_body("Credentials"),
                                   "responses": _responses("Auth", 400, 409)}},
            "/login": {"post": {"summary": "User Login", "requestBody": _json_body("Credentials"),
                                "responses": _responses("Auth", 400, 401)}},
            "/generate": {"post": {"summary": "Generate Image from Text", "security": bearer,
                                   "requestBody": _json_body("GenerateRequest"),
                                   "responses": _responses("Image", 400, 401, 429, 502, 503)}},
            "/edit": {"post": {"summary": "Edit Image with Text Prompt", "security": bearer,
                               "requestBody": _json_body("EditRequest"),
                               "responses": _responses("Image", 400, 401, 429, 502, 503)}},
            "/generate_video": {"post": {"summary": "Start Video Generation", "security": bearer,
                                         "requestBody": _json_body("VideoRequest"),
                                         "responses": _responses("Operation", 400, 401, 429, 502, 503)}},
            "/edit_video": {"post": {"summary": "Start Image-to-Video Generation", "security": bearer,
                                     "requestBody": _json_body("EditVideoRequest"),
                                     "responses": _responses("Operation", 400, 401, 429, 502, 503)}},
            "/video_status/{operation}": {"get": {
                "summary": "Poll Video Operation",
                "security": bearer,
                "parameters": [
                    {"name": "operation", "in": "path", "required": True, "schema": {"type": "string"}},
                    {"name": "inline", "in": "query", "required": False, "schema": {"type": "boolean"}},
                ],
                "responses": _responses("VideoStatus", 401, 429, 502, 503),
            }},
        },
        "components": {
            "securitySchemes": {"bearerAuth": {"type": "http", "scheme": "bearer"}},
            "schemas": {
                "Envelope": {"type": "object", "required": ["success"], "properties": {
                    "success": {"type": "boolean"}, "error": {"type": "string"}, "category": {"type": "string"}}},
                "Health": {"type": "object", "properties": {
                    "status": {"type": "string"}, "timestamp": {"type": "number"}}},
                "Credentials": {"type": "object", "required": ["email", "password"], "properties": {
                    "email": {"type": "string"}, "password": {"type": "string"}}},
                "Auth": {"type": "object", "properties": {
                    "success": {"type": "boolean"}, "api_key": {"type": "string"}}},
                "GenerateRequest": {"type": "object", "required": ["prompt"], "properties": {
                    "prompt": {"type": "string"}}},
                "EditRequest": {"type": "object", "required": ["prompt", "image"], "properties": {
                    "prompt": {"type": "string"}, "image": {"type": "string", "description": "Base64 image"},
                    "mime_type": {"type": "string"}}},
                "Image": {"type": "object", "properties": {
                    "success": {"type": "boolean"}, "image": {"type": "string"}, "mime_type": {"type": "string"}}},
                "VideoRequest": {"type": "object", "required": ["prompt"], "properties": {
                    "prompt": {"type": "string"}, "negative_prompt": {"type": "string"},
                    "aspect_ratio": {"type": "string", "enum": ["16:9", "9:16"]},
                    "resolution": {"type": "string", "enum": ["720p", "1080p"]}}},
                "EditVideoRequest": {"allOf": [{"$ref": "#/components/schemas/VideoRequest"}, {
                    "type": "object", "required": ["image"], "properties": {
                        "image": {"type": "string"}, "mime_type": {"type": "string"}}}]},
                "Operation": {"type": "object", "properties": {
                    "success": {"type": "boolean"}, "operation_name": {"type": "string"}}},
                "VideoStatus": {"type": "object", "properties": {
                    "success": {"type": "boolean"}, "done": {"type": "boolean"},
                    "video_uri": {"type": "string"}, "video": {"type": "string"}}},
            },
        },
    }


SWAGGER_UI_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <title>geminipocket relay</title>
  <link rel="stylesheet" href="https://unpkg.com/swagger-ui-dist@5/swagger-ui.css" />
</head>
<body>
  <div id="swagger-ui"></div>
  <script src="https://unpkg.com/swagger-ui-dist@5/swagger-ui-bundle.js"></script>
  <script>
    window.onload = () => { window.ui = SwaggerUIBundle({ url: "/openapi", dom_id: "#swagger-ui" }); };
  </script>
</body>
</html>
"""
