import base64
import binascii
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import pydantic
import requests

from errors import MissingCredential, MissingField, NotAFile, UpstreamError
from typedefs import (
    DirectoryListing,
    FileEntry,
    FileResource,
    WriteResult,
    parse_contents,
)

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"
DEFAULT_UPSTREAM_MESSAGE = "GitHub request failed"


def encode_path(path: str) -> str:
    """Percent-encode each segment of a slash-delimited path, keeping the slashes."""
    return "/".join(quote(segment, safe="") for segment in path.split("/"))


def upstream_message(payload: Any, reason: Optional[str]) -> str:
    """
    Pick the message for a failed GitHub call: the JSON body's `message`,
    else the HTTP reason phrase, else a generic default.
    """
    if isinstance(payload, dict):
        message = payload.get("message")
        if isinstance(message, str) and message:
            return message
    if reason:
        return reason
    return DEFAULT_UPSTREAM_MESSAGE


def decode_content(content: str, encoding: Optional[str]) -> str:
    encoding = encoding or "base64"
    if encoding == "base64":
        try:
            raw = base64.b64decode(content)
        except (binascii.Error, ValueError):
            raise UpstreamError("GitHub returned malformed base64 content", 502)
    elif encoding in ("utf-8", "utf8"):
        return content
    else:
        raise UpstreamError(
            f"Unsupported content encoding from GitHub: {encoding}", 502
        )
    return raw.decode("utf-8", errors="replace")


def encode_content(content: str) -> str:
    return base64.b64encode(content.encode("utf-8")).decode("ascii")


class ContentsClient:
    def __init__(
        self,
        token: Optional[str] = None,
        session: Optional[requests.Session] = None,
        base_url: str = GITHUB_API_URL,
        timeout: Optional[float] = None,
    ):
        """
        Thin client for the GitHub repository contents API.

        - `token` is only required for writes and deletes; reads go out
          anonymously when it is absent.
        - `timeout` of None leaves requests' default (wait indefinitely).
        """
        self.token = token
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _require_token(self, action: str):
        if not self.token:
            raise MissingCredential(
                f"GITHUB_TOKEN is not configured; cannot {action} files."
            )

    def _url(self, owner: str, repo: str, path: str) -> str:
        return (
            f"{self.base_url}/repos/{quote(owner, safe='')}/{quote(repo, safe='')}"
            f"/contents/{encode_path(path)}"
        )

    def _request(
        self, method: str, url: str, body: Optional[Dict[str, Any]] = None
    ) -> Any:
        logger.debug("%s %s", method, url)
        try:
            resp = self.session.request(
                method, url, headers=self._headers(), json=body, timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.warning("GitHub request %s %s failed: %s", method, url, e)
            raise UpstreamError("Could not reach GitHub", 502) from e

        if not resp.ok:
            try:
                payload = resp.json()
            except ValueError:
                payload = None
            raise UpstreamError(
                upstream_message(payload, resp.reason), resp.status_code
            )

        try:
            return resp.json()
        except ValueError:
            raise UpstreamError("GitHub returned a non-JSON response", 502)

    # -----------------------
    # Public API
    # -----------------------

    def fetch_file(self, owner: str, repo: str, path: str) -> FileResource:
        """
        Return the file at `path` with its content decoded to text.
        Raises NotAFile if `path` is a directory or another non-file entry.
        """
        data = self._request("GET", self._url(owner, repo, path))
        try:
            entry = parse_contents(data)
        except pydantic.ValidationError:
            raise UpstreamError("Unexpected contents payload from GitHub", 502)

        if isinstance(entry, FileEntry):
            return FileResource(
                owner=owner,
                repo=repo,
                path=entry.path,
                content=decode_content(entry.content, entry.encoding),
                sha=entry.sha,
            )
        if isinstance(entry, DirectoryListing):
            raise NotAFile("The requested path is a directory, not a file.")
        raise NotAFile("The requested path is not a file.")

    def write_file(
        self,
        owner: str,
        repo: str,
        path: str,
        content: str,
        message: Optional[str] = None,
        sha: Optional[str] = None,
    ) -> WriteResult:
        """
        Create or replace `path`. Without `sha` GitHub creates the file; with
        it, GitHub replaces the file only if `sha` is still current.
        """
        self._require_token("write")

        body: Dict[str, Any] = {
            "message": message or f"Update {path} via Content Bridge",
            "content": encode_content(content),
        }
        if sha:
            body["sha"] = sha

        data = self._request("PUT", self._url(owner, repo, path), body)
        try:
            return WriteResult.model_validate((data or {}).get("content"))
        except (pydantic.ValidationError, AttributeError):
            raise UpstreamError("Unexpected write response from GitHub", 502)

    def delete_file(
        self,
        owner: str,
        repo: str,
        path: str,
        message: Optional[str],
        sha: str,
    ) -> None:
        self._require_token("delete")
        if not sha:
            raise MissingField("A current SHA is required to delete a file.")

        self._request(
            "DELETE",
            self._url(owner, repo, path),
            {"message": message or f"Delete {path} via Content Bridge", "sha": sha},
        )
