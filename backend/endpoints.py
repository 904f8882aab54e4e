import base64
import inspect
import json
import logging
import os
from typing import Any, Dict, Optional

import pydantic
import requests

from errors import BridgeError, InvalidPayload, MissingField
from remote import GITHUB_API_URL, ContentsClient
from secret import resolve_github_token
from typedefs import DeleteFileRequest, GetFileRequest, UpdateFileRequest

logger = logging.getLogger(__name__)

# CORS settings
CORS_HEADERS = {
    "Access-Control-Allow-Origin": os.environ.get("CORS_ALLOW_ORIGIN", "*"),
    "Access-Control-Allow-Methods": "GET,PUT,DELETE,OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
}

# Connection pool reused across warm invocations
_SESSION: Optional[requests.Session] = None


def _get_session() -> requests.Session:
    global _SESSION
    if _SESSION is None:
        _SESSION = requests.Session()
    return _SESSION


def _get_client() -> ContentsClient:
    """Build a client with the credential as configured right now."""
    timeout = os.environ.get("REQUEST_TIMEOUT_SECONDS")
    return ContentsClient(
        token=resolve_github_token(),
        session=_get_session(),
        base_url=os.environ.get("GITHUB_API_URL", GITHUB_API_URL),
        timeout=float(timeout) if timeout else None,
    )


def _json_response(
    status: int,
    body: Optional[Any] = None,
    extra_headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    return {
        "statusCode": status,
        "headers": {
            "Content-Type": "application/json",
            **CORS_HEADERS,
            **(extra_headers or {}),
        },
        "body": json.dumps({} if body is None else body),
    }


def _error_response(status: int, message: str):
    return _json_response(status, {"error": message})


def _get_body(event: Dict[str, Any]) -> str:
    body = event.get("body") or ""
    # API Gateway might base64-encode the body
    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(body).decode("utf-8")
        except ValueError:
            raise InvalidPayload("The request body is not valid.")
    return body


def _ensure_required(body: pydantic.BaseModel, fields: tuple, message: str):
    if any(not getattr(body, name) for name in fields):
        raise MissingField(message)


# -----------------------
# Handlers
# -----------------------


def _handle_get(body: GetFileRequest) -> Dict[str, Any]:
    _ensure_required(
        body,
        ("owner", "repo", "path"),
        "owner, repo and path are required to load a file.",
    )
    logger.info("Loading %s/%s:%s", body.owner, body.repo, body.path)
    file = _get_client().fetch_file(body.owner, body.repo, body.path)
    return _json_response(
        200, {"content": file.content, "sha": file.sha, "path": file.path}
    )


def _handle_update(body: UpdateFileRequest) -> Dict[str, Any]:
    _ensure_required(
        body,
        ("owner", "repo", "path"),
        "owner, repo and path are required to save a file.",
    )
    logger.info(
        "Saving %s/%s:%s (%s)",
        body.owner,
        body.repo,
        body.path,
        "update" if body.sha else "create",
    )
    result = _get_client().write_file(
        body.owner,
        body.repo,
        body.path,
        body.content or "",
        message=body.message,
        sha=body.sha,
    )
    return _json_response(200, result.model_dump())


def _handle_delete(body: DeleteFileRequest) -> Dict[str, Any]:
    _ensure_required(
        body,
        ("owner", "repo", "path", "sha"),
        "owner, repo, path and sha are required to delete a file.",
    )
    logger.info(
        "Deleting %s/%s:%s at %s", body.owner, body.repo, body.path, body.sha
    )
    _get_client().delete_file(
        body.owner, body.repo, body.path, body.message, body.sha
    )
    return _json_response(200, {"ok": True})


def _handle_health() -> Dict[str, Any]:
    return _json_response(200, {"status": "ok"})


ROUTES = {
    "GET /api/file": (_handle_get, "loading"),
    "PUT /api/file": (_handle_update, "saving"),
    "DELETE /api/file": (_handle_delete, "deleting"),
    "GET /health": (_handle_health, "checking"),
}


def _parse_payload(payload_type, event: Dict[str, Any]) -> pydantic.BaseModel:
    """Build the request model from the query string (GET) or JSON body."""
    if (event.get("httpMethod") or "").upper() == "GET":
        data = event.get("queryStringParameters") or {}
    else:
        try:
            data = json.loads(_get_body(event))
        except json.JSONDecodeError:
            raise InvalidPayload("The request body is not valid JSON.")
        if not isinstance(data, dict):
            raise InvalidPayload("The request body must be a JSON object.")

    try:
        return payload_type.model_validate(data)
    except pydantic.ValidationError:
        raise InvalidPayload("The request has fields of the wrong type.")


def call(function, event):
    params = inspect.signature(function).parameters
    if "body" not in params:
        return function()
    body = _parse_payload(params["body"].annotation, event)
    return function(body)


def handler(event, context) -> Dict[str, Any]:
    """
    AWS Lambda handler for API Gateway proxy events.

    Routes:
      - OPTIONS *                          -> CORS preflight
      - GET    /health                     -> health check
      - GET    /api/file?owner=&repo=&path= -> {content, sha, path}
      - PUT    /api/file                   -> create/update, JSON {owner, repo, path, content, message?, sha?}
      - DELETE /api/file                   -> delete, JSON {owner, repo, path, message?, sha}

    Errors are returned as {"error": message} with the matching status code.
    """
    http_method = (event.get("httpMethod") or "").upper()
    path = event.get("path") or "/"

    # CORS preflight
    if http_method == "OPTIONS":
        return _json_response(204)

    handler_key = f"{http_method} {path}"
    if handler_key not in ROUTES:
        return _error_response(404, "Not Found")

    function, action = ROUTES[handler_key]
    try:
        return call(function, event)
    except BridgeError as e:
        logger.info("%s failed with %s: %s", handler_key, e.status, e.message)
        return _error_response(e.status, e.message)
    except Exception:
        logger.exception("Unexpected error handling %s", handler_key)
        return _error_response(500, f"Unexpected error while {action} the file.")
