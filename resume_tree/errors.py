from __future__ import annotations
from typing import Optional
from pydantic import BaseModel


class ResumeTreeError(Exception):
    """Base for every error the engine raises. `status_code` is used by the HTTP layer."""

    status_code = 400

    def __init__(self, message: str = "", **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": self.message, **self.context}


# --- structural (raised by the action layer, tree left untouched) ---


class NotFound(ResumeTreeError):
    status_code = 404


class InvalidPosition(ResumeTreeError):
    pass


class InvalidPermutation(ResumeTreeError):
    pass


class CycleRejected(ResumeTreeError):
    status_code = 409


class InvalidTree(ResumeTreeError):
    status_code = 422


class InvalidAction(ResumeTreeError):
    """Action payload that does not describe a known, well-formed edit."""


# --- external collaborators ---


class UnreadableDocument(ResumeTreeError):
    status_code = 422


class ServiceError(ResumeTreeError):
    status_code = 502


class InitializationFailed(ResumeTreeError):
    """Extraction or structuring failed; the caller goes back to the upload step."""

    status_code = 422


class PatchParseError(BaseModel):
    """Returned (not raised) when no step of the normalizer chain produced a patch."""

    raw: str
    reason: str
    detail: Optional[str] = None
