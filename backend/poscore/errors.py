# Overview: Error taxonomy shared by the sale, return and folio services.

from __future__ import annotations


class PosError(Exception):
    """Base for failures surfaced to the command layer."""
    code = "ERROR"
    http_status = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code, "details": self.details}


class ConnectionFailure(PosError):
    """Storage unreachable; the operation never started."""
    code = "CONNECTION_FAILURE"
    http_status = 503


class InvalidRequest(PosError):
    """400-level input problem, rejected before any write."""
    code = "INVALID_REQUEST"
    http_status = 400


class PolicyViolation(PosError):
    """Business rule breach (e.g. returning more than was purchased)."""
    code = "POLICY_VIOLATION"
    http_status = 409


class NotFound(PosError):
    code = "NOT_FOUND"
    http_status = 404


class PersistenceFailure(PosError):
    """A write failed mid-transaction; the unit was rolled back."""
    code = "PERSISTENCE_FAILURE"
    http_status = 500


class FolioCollision(PosError):
    """
    A folio unique constraint fired on insert.

    Retried by the service; only surfaces once retries are exhausted.
    """
    code = "FOLIO_COLLISION"
    http_status = 500
