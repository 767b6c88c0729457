"""Error taxonomy shared by the transports and the collection client."""

from __future__ import annotations

from typing import Any


class KubeMirrorError(Exception):
    """Base class for every error raised by kubemirror."""


class ConfigurationError(KubeMirrorError):
    """Raised when a collection cannot be constructed (e.g. unknown kind).

    Fatal: never retried.
    """


class AuthorizationError(KubeMirrorError):
    """The API server answered 403.  Permanent for the component that saw it."""

    def __init__(self, url: str, message: str = "not authorized") -> None:
        super().__init__(f"{message}: {url}")
        self.url = url


class TransientNetworkError(KubeMirrorError):
    """Connection failure or unexpected status while fetching a collection."""

    def __init__(self, url: str, message: str, status: int | None = None) -> None:
        super().__init__(f"{message}: {url}")
        self.url = url
        self.status = status


class ProtocolError(KubeMirrorError):
    """A watch event or response body could not be decoded."""


class ApiError(KubeMirrorError):
    """Structured failure of a create, update or delete request.

    Mirrors the fields of a Kubernetes ``Status`` object when the server
    returned one; otherwise ``reason`` carries the transport error text.
    """

    def __init__(
        self,
        status: int,
        reason: str,
        message: str = "",
        body: Any = None,
    ) -> None:
        super().__init__(f"{status} {reason}: {message}" if message else f"{status} {reason}")
        self.status = status
        self.reason = reason
        self.message = message
        self.body = body

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "reason": self.reason,
            "message": self.message,
            "body": self.body,
        }
