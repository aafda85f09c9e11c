"""Domain errors raised by the storage layer and the ordering engines.

The HTTP layer turns each of them into an ``ErrorEnvelope`` response; domain
code never deals with status codes.
"""

from __future__ import annotations

from typing import Any, Optional


class VeloError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(VeloError):
    """A referenced project, board, column or task does not exist."""

    code = "not_found"
    status_code = 404

    @classmethod
    def for_entity(cls, entity: str, entity_id: str) -> "NotFound":
        return cls(f'{entity} with id "{entity_id}" not found', {"id": entity_id, "entity": entity})


class AdmissionDenied(VeloError):
    """The target column is at its WIP limit."""

    code = "wip_limit_reached"
    status_code = 409


class InvalidArgument(VeloError):
    """The request is well-formed but does not match the stored state."""

    code = "invalid_argument"
    status_code = 400
