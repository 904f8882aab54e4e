"""Form -> bridge -> contents client, against an in-memory stand-in for GitHub."""

import base64
import hashlib
import json
from unittest.mock import Mock, patch
from urllib.parse import unquote, urlsplit

import pytest

import endpoints
from form import FileForm


def _response(status, payload, reason="OK"):
    resp = Mock()
    resp.status_code = status
    resp.ok = status < 400
    resp.reason = reason
    resp.json.return_value = payload
    return resp


class FakeGitHub:
    """Keeps files per repo path and enforces the sha check on writes."""

    def __init__(self):
        self.files = {}
        self.calls = 0

    def seed(self, path, text, sha):
        self.files[path] = (text, sha)

    def request(self, method, url, headers=None, json=None, timeout=None):
        self.calls += 1
        path = unquote(urlsplit(url).path.split("/contents/", 1)[1])
        current = self.files.get(path)

        if method == "GET":
            if path == "src":
                return _response(200, [{"type": "file", "path": "src/a.py"}])
            if current is None:
                return _response(404, {"message": "Not Found"}, "Not Found")
            text, sha = current
            encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
            return _response(
                200,
                {
                    "type": "file",
                    "path": path,
                    "sha": sha,
                    "content": encoded,
                    "encoding": "base64",
                },
            )

        if "Authorization" not in (headers or {}):
            return _response(401, {"message": "Requires authentication"}, "Unauthorized")

        if current is not None and json.get("sha") != current[1]:
            return _response(
                409, {"message": f"{path} does not match {json.get('sha')}"}, "Conflict"
            )

        if method == "PUT":
            text = base64.b64decode(json["content"]).decode("utf-8")
            sha = hashlib.sha1(f"{path}:{text}:{self.calls}".encode()).hexdigest()
            self.files[path] = (text, sha)
            return _response(200, {"content": {"sha": sha, "path": path}})

        if method == "DELETE":
            if current is None:
                return _response(404, {"message": "Not Found"}, "Not Found")
            del self.files[path]
            return _response(200, {"content": None})

        raise AssertionError(f"unexpected method {method}")


class BridgeSession:
    """Turns form requests into API Gateway events for the Lambda handler."""

    def request(self, method, url, params=None, **kwargs):
        body = kwargs.get("json")
        event = {
            "httpMethod": method,
            "path": urlsplit(url).path,
            "queryStringParameters": params,
            "body": None if body is None else json.dumps(body),
        }
        result = endpoints.handler(event, None)
        return _response(result["statusCode"], json.loads(result["body"]))


@pytest.fixture
def github():
    return FakeGitHub()


@pytest.fixture
def token():
    return {"value": "ghp_test"}


@pytest.fixture
def file_form(github, token):
    with patch("endpoints._get_session", return_value=github), patch(
        "endpoints.resolve_github_token", side_effect=lambda: token["value"]
    ):
        f = FileForm("http://bridge", session=BridgeSession(), confirm=lambda p: True)
        f.set_target("acme", "docs", "README.md")
        yield f


def test_load_save_delete_cycle(file_form, github):
    github.seed("README.md", "# Docs", "abc123")

    assert file_form.load()
    assert (file_form.content, file_form.sha) == ("# Docs", "abc123")

    file_form.content = "# Docs v2"
    assert file_form.save()
    new_sha = file_form.sha
    assert new_sha != "abc123"

    assert file_form.delete()
    assert file_form.sha is None

    assert file_form.load() is False
    assert file_form.status == "Not Found"


def test_round_trip_text(file_form):
    text = "héllo\nwörld ✓\n"
    file_form.content = text
    assert file_form.save()

    file_form.content = ""
    assert file_form.load()
    assert file_form.content == text


def test_empty_content_creates_empty_file(file_form, github):
    file_form.content = ""
    assert file_form.save()
    assert github.files["README.md"][0] == ""


def test_stale_sha_conflict(file_form, github):
    github.seed("README.md", "# Docs", "abc123")
    assert file_form.load()
    github.seed("README.md", "someone else", "zzz999")

    file_form.content = "mine"
    assert file_form.save() is False

    assert "does not match" in file_form.status
    assert file_form.sha == "abc123"
    assert github.files["README.md"] == ("someone else", "zzz999")


def test_directory_is_rejected(file_form):
    file_form.set_target("acme", "docs", "src")

    assert file_form.load() is False
    assert file_form.status == "The requested path is a directory, not a file."


def test_missing_credential_blocks_writes(file_form, github, token):
    github.seed("README.md", "# Docs", "abc123")
    token["value"] = None

    assert file_form.load()
    calls = github.calls

    assert file_form.save() is False
    assert "GITHUB_TOKEN" in file_form.status
    assert file_form.delete() is False
    assert "GITHUB_TOKEN" in file_form.status
    assert github.calls == calls
