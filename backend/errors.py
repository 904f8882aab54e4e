from typing import Optional


class BridgeError(Exception):
    """An error that is safe to show to the caller, with the HTTP status to use."""

    status = 500

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status


class InvalidPayload(BridgeError):
    status = 400


class MissingField(BridgeError):
    status = 400


class NotAFile(BridgeError):
    status = 400


class MissingCredential(BridgeError):
    status = 500


class UpstreamError(BridgeError):
    """Non-2xx reply from GitHub. `status` is GitHub's status code, unchanged."""

    def __init__(self, message: str, status: int):
        super().__init__(message, status)
