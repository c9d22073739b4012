from __future__ import annotations

"""
Error hierarchy and helpers for ZK Playground Services.

This module defines a small, consistent set of exceptions and helpers to
serialize them as RFC 7807 "problem+json" responses. The exceptions are
framework-agnostic; the FastAPI middleware in ``middleware/errors.py`` catches
them and returns JSON automatically.

Usage
-----
    from playground_services.errors import NotFound

    raise NotFound("Circuit", details={"cid": cid})

Design
------
- Every error has:
  - ``status_code`` (int): HTTP status
  - ``code`` (str): stable machine code (e.g., "not_found")
  - ``message`` (str): human-friendly summary
  - ``details`` (dict|None): optional structured diagnostics
- ``to_problem()`` returns an RFC 7807 dict.
- Orchestration failures additionally carry the ``stage`` that was being
  attempted and, when one exists, the transaction ``signature``.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional


DEFAULT_ERROR_DOCS_BASE = "https://docs.zkplayground.dev/errors"


@dataclass
class ApiError(Exception):
    message: str
    status_code: int = 400
    code: str = "bad_request"
    details: Optional[Mapping[str, Any]] = None
    type_uri_base: str = DEFAULT_ERROR_DOCS_BASE

    def __post_init__(self) -> None:
        super().__init__(self.message)

    __hash__ = Exception.__hash__

    # --- RFC 7807 helpers -------------------------------------------------- #

    def type_uri(self) -> str:
        return f"{self.type_uri_base}#{self.code}"

    def title(self) -> str:
        return {
            "bad_request": "Bad Request",
            "not_found": "Not Found",
            "storage_unavailable": "Storage Unavailable",
            "remote_upload_failed": "Remote Upload Failed",
            "gateway_timeout": "Gateway Timeout",
            "invalid_environment": "Invalid Environment",
            "invalid_account": "Invalid Account",
            "network_unreachable": "Network Unreachable",
            "environment_not_ready": "Environment Not Ready",
            "rpc_error": "Upstream RPC Error",
            "stage_failed": "Stage Failed",
            "signer_rejected": "Signer Rejected",
            "submission_failed": "Submission Failed",
            "confirmation_timeout": "Confirmation Timeout",
            "server_error": "Internal Server Error",
        }.get(self.code, self.message or "Error")

    def to_problem(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "type": self.type_uri(),
            "title": self.title(),
            "status": self.status_code,
            "code": self.code,
            "detail": self.message,
        }
        if self.details:
            body["details"] = dict(self.details)
        return body

    # --- Conversions ------------------------------------------------------- #

    @classmethod
    def from_unexpected(cls, err: BaseException) -> "ApiError":
        """
        Convert an unexpected exception into a generic server error while
        preserving a minimal diagnostic in ``details``.
        """
        return ServerError(
            "Unhandled server error",
            details={"exc_type": err.__class__.__name__, "str": str(err)},
        )


# ------------------------------ Storage errors ------------------------------- #


class BadRequest(ApiError):
    def __init__(self, message: str = "Bad request", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=400, code="bad_request", details=details)


class NotFound(ApiError):
    def __init__(self, what: str = "Resource", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=f"{what} not found", status_code=404, code="not_found", details=details)


class StorageUnavailable(ApiError):
    """Neither the remote provider nor the local store accepted the write."""

    def __init__(self, message: str = "No storage backend accepted the artifact", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=503, code="storage_unavailable", details=details)


class RemoteUploadFailed(ApiError):
    """Primary provider refused or failed an upload. Recovered by the local fallback."""

    def __init__(self, message: str = "Remote upload failed", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=502, code="remote_upload_failed", details=details)


class GatewayTimeout(ApiError):
    """A single gateway did not answer in time. Logged, then the next gateway is tried."""

    def __init__(self, gateway: str, *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(
            message=f"Gateway {gateway} timed out",
            status_code=504,
            code="gateway_timeout",
            details=details or {"gateway": gateway},
        )


# ------------------------------- Ledger errors ------------------------------- #


class InvalidEnvironment(ApiError):
    def __init__(self, message: str = "Operation not allowed on this network", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=409, code="invalid_environment", details=details)


class InvalidAccount(ApiError):
    def __init__(self, account: str, *, reason: str = "not a base58 32-byte account id"):
        super().__init__(
            message=f"Invalid account: {reason}",
            status_code=400,
            code="invalid_account",
            details={"account": account},
        )


class NetworkUnreachable(ApiError):
    def __init__(self, message: str = "Ledger node unreachable", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=503, code="network_unreachable", details=details)


class EnvironmentNotReady(ApiError):
    def __init__(self, message: str = "Ledger node is not healthy", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=503, code="environment_not_ready", details=details)


class RpcError(ApiError):
    def __init__(self, message: str = "Upstream RPC error", *, details: Optional[Mapping[str, Any]] = None, status: int = 502):
        super().__init__(message=message, status_code=status, code="rpc_error", details=details)


class ServerError(ApiError):
    def __init__(self, message: str = "Internal server error", *, details: Optional[Mapping[str, Any]] = None):
        super().__init__(message=message, status_code=500, code="server_error", details=details)


# ---------------------------- Orchestration errors --------------------------- #


class OrchestrationError(ApiError):
    """
    Base for deploy/verify workflow failures.

    ``stage`` is the stage that was being attempted when the workflow aborted.
    ``signature`` is set once a transaction has been submitted.
    """

    default_code = "stage_failed"
    default_status = 502

    def __init__(
        self,
        stage: Any,
        message: str,
        *,
        signature: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ):
        merged: Dict[str, Any] = {"stage": getattr(stage, "label", str(stage))}
        if signature:
            merged["signature"] = signature
        if details:
            merged.update(details)
        super().__init__(
            message=message,
            status_code=self.default_status,
            code=self.default_code,
            details=merged,
        )
        self.stage = stage
        self.signature = signature


class StageFailed(OrchestrationError):
    default_code = "stage_failed"


class SignerRejected(OrchestrationError):
    default_code = "signer_rejected"
    default_status = 403


class SubmissionFailed(OrchestrationError):
    default_code = "submission_failed"


class ConfirmationTimeout(OrchestrationError):
    default_code = "confirmation_timeout"
    default_status = 504


__all__ = [
    "ApiError",
    "BadRequest",
    "NotFound",
    "StorageUnavailable",
    "RemoteUploadFailed",
    "GatewayTimeout",
    "InvalidEnvironment",
    "InvalidAccount",
    "NetworkUnreachable",
    "EnvironmentNotReady",
    "RpcError",
    "ServerError",
    "OrchestrationError",
    "StageFailed",
    "SignerRejected",
    "SubmissionFailed",
    "ConfirmationTimeout",
]
