from typing import Any, Literal, Optional, Union

import pydantic


# -----------------------
# Bridge request bodies
# -----------------------
# Fields are optional here so that an absent field can be reported as missing
# data rather than as a malformed payload.


class GetFileRequest(pydantic.BaseModel):
    owner: Optional[str] = None
    repo: Optional[str] = None
    path: Optional[str] = None


class UpdateFileRequest(GetFileRequest):
    content: Optional[str] = None
    message: Optional[str] = None
    sha: Optional[str] = None


class DeleteFileRequest(GetFileRequest):
    message: Optional[str] = None
    sha: Optional[str] = None


# -----------------------
# Results
# -----------------------


class FileResource(pydantic.BaseModel):
    owner: str
    repo: str
    path: str
    content: str
    sha: str


class WriteResult(pydantic.BaseModel):
    sha: str
    path: str


# -----------------------
# GitHub contents payloads
# -----------------------


class FileEntry(pydantic.BaseModel):
    type: Literal["file"]
    path: str
    sha: str
    content: str = ""
    encoding: Optional[str] = "base64"


class OtherEntry(pydantic.BaseModel):
    """A single entry that is not a regular file (symlink, submodule, dir)."""

    type: str
    path: str = ""


class DirectoryListing(pydantic.BaseModel):
    entries: list[dict[str, Any]]


ContentsPayload = Union[FileEntry, OtherEntry, DirectoryListing]


def parse_contents(payload: Any) -> ContentsPayload:
    """
    Tag a raw "get contents" reply. GitHub answers with a JSON list for
    directories and a single object otherwise.
    Raises pydantic.ValidationError if the payload has neither shape.
    """
    if isinstance(payload, list):
        return DirectoryListing(entries=payload)
    if isinstance(payload, dict) and payload.get("type") == "file":
        return FileEntry.model_validate(payload)
    return OtherEntry.model_validate(payload)
