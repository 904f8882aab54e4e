import argparse
import logging
import os
import sys
from typing import Any, Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = "Update via Content Bridge"
BRIDGE_ROUTE = "/api/file"


class FormError(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def _target_field(name: str) -> property:
    """An identity field; changing it drops the sha held for the old file."""
    attr = "_" + name

    def get(self) -> str:
        return getattr(self, attr)

    def set(self, value: str):
        if value != getattr(self, attr, None):
            self.sha = None
        setattr(self, attr, value)

    return property(get, set)


class FileForm:
    owner = _target_field("owner")
    repo = _target_field("repo")
    path = _target_field("path")

    def __init__(
        self,
        bridge_url: str,
        session: Optional[requests.Session] = None,
        confirm: Optional[Callable[[str], bool]] = None,
    ):
        """
        Client-side state for editing one file through the bridge.

        `sha` is the revision token of the last load or save. Every save
        sends it back so GitHub can reject writes based on a stale copy.
        """
        self.bridge_url = bridge_url.rstrip("/")
        self.session = session or requests.Session()
        self.confirm = confirm or (lambda prompt: False)

        self.sha: Optional[str] = None
        self.owner = ""
        self.repo = ""
        self.path = ""
        self.message = DEFAULT_MESSAGE
        self.content = ""
        self.busy = False
        self.status: Optional[str] = None

    def set_target(self, owner: str, repo: str, path: str):
        """Point the form at a file. A different file drops the held sha."""
        self.owner, self.repo, self.path = owner, repo, path

    def _has_target(self) -> bool:
        return bool(self.owner and self.repo and self.path)

    def _send(
        self,
        method: str,
        params: Optional[Dict[str, str]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        try:
            resp = self.session.request(
                method, self.bridge_url + BRIDGE_ROUTE, params=params, json=body
            )
        except requests.RequestException as e:
            logger.warning("Bridge request failed: %s", e)
            raise FormError("Could not reach the content bridge.")

        try:
            data = resp.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            raise FormError(
                f"Unexpected response from the bridge ({resp.status_code})."
            )
        if not resp.ok:
            raise FormError(
                data.get("error") or f"Request failed ({resp.status_code})."
            )
        return data

    def _begin(self) -> bool:
        if self.busy:
            self.status = "Another operation is still in progress."
            return False
        self.status = None
        return True

    # -----------------------
    # Operations
    # -----------------------

    def load(self) -> bool:
        if not self._begin():
            return False
        if not self._has_target():
            self.status = "Fill in the owner, repository and file path."
            return False

        self.busy = True
        try:
            data = self._send(
                "GET",
                params={"owner": self.owner, "repo": self.repo, "path": self.path},
            )
            content, sha = data.get("content"), data.get("sha")
            if content is None or not sha:
                raise FormError("The bridge returned an incomplete file.")
        except FormError as e:
            self.status = e.message
            return False
        finally:
            self.busy = False

        self.content = content
        self.sha = sha
        self.status = f"Loaded {data.get('path') or self.path}."
        return True

    def save(self) -> bool:
        if not self._begin():
            return False
        if not self._has_target():
            self.status = "Fill in the owner, repository and file path before saving."
            return False

        self.busy = True
        try:
            data = self._send(
                "PUT",
                body={
                    "owner": self.owner,
                    "repo": self.repo,
                    "path": self.path,
                    "content": self.content,
                    "message": self.message or DEFAULT_MESSAGE,
                    "sha": self.sha,
                },
            )
            if not data.get("sha"):
                raise FormError("The bridge did not return the new SHA.")
        except FormError as e:
            self.status = e.message
            return False
        finally:
            self.busy = False

        self.sha = data["sha"]
        self.status = f"Saved changes to {data.get('path') or self.path}."
        return True

    def delete(self) -> bool:
        if not self._begin():
            return False
        if not self._has_target():
            self.status = "Fill in the owner, repository and file path before deleting."
            return False
        if not self.sha:
            self.status = "Load the file before deleting it to obtain its current SHA."
            return False
        if not self.confirm(f"Delete {self.path}?"):
            self.status = "Delete cancelled."
            return False

        self.busy = True
        try:
            self._send(
                "DELETE",
                body={
                    "owner": self.owner,
                    "repo": self.repo,
                    "path": self.path,
                    "message": self.message or DEFAULT_MESSAGE,
                    "sha": self.sha,
                },
            )
        except FormError as e:
            self.status = e.message
            return False
        finally:
            self.busy = False

        self.content = ""
        self.sha = None
        self.status = f"Deleted {self.path}."
        return True


# -----------------------
# Command line
# -----------------------


def _ask(prompt: str) -> bool:
    return input(f"{prompt} [y/N] ").strip().lower() in ("y", "yes")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="content-bridge", description="View, edit or delete a GitHub file."
    )
    parser.add_argument("command", choices=("load", "save", "delete"))
    parser.add_argument("owner")
    parser.add_argument("repo")
    parser.add_argument("path")
    parser.add_argument(
        "--bridge",
        default=os.environ.get("CONTENT_BRIDGE_URL", "http://localhost:3000"),
        help="base URL of the content bridge",
    )
    parser.add_argument("-m", "--message", default=DEFAULT_MESSAGE)
    parser.add_argument(
        "-f", "--file", help="save: read content from FILE; load: write content to FILE"
    )
    parser.add_argument("--sha", help="save: SHA of the version being replaced")
    parser.add_argument("-y", "--yes", action="store_true", help="skip confirmation")
    args = parser.parse_args(argv)

    form = FileForm(args.bridge, confirm=(lambda prompt: True) if args.yes else _ask)
    form.set_target(args.owner, args.repo, args.path)
    form.message = args.message

    if args.command == "load":
        ok = form.load()
        if ok:
            if args.file:
                with open(args.file, "w", encoding="utf-8") as f:
                    f.write(form.content)
            else:
                sys.stdout.write(form.content)
    elif args.command == "save":
        if args.file:
            with open(args.file, encoding="utf-8") as f:
                form.content = f.read()
        else:
            form.content = sys.stdin.read()
        form.sha = args.sha
        ok = form.save()
        if ok:
            print(form.sha)
    else:
        # Deleting needs the current sha, so load first
        ok = form.load() and form.delete()

    print(form.status, file=sys.stderr)
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
