"""Structured errors raised by the injection pipeline.

Two classes of failure exist. An absent dependency secret is expected and
handled inside the pipeline (see ``SecretNotFoundError``); everything else
is an ``InjectionError`` returned to the caller, which must reject the
admission instead of applying a partial mutation.
"""

from __future__ import annotations

import json
from typing import Any

from kubernetes.client import ApiException


class InjectionError(RuntimeError):
    """Structured exception for injection pipeline failures."""

    code = "injection_failed"

    def __init__(
        self,
        message: str,
        *,
        phase: str = "pipeline",
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.phase = phase
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for logs and admission responses."""
        return {
            "code": self.code,
            "phase": self.phase,
            "message": self.message,
            "details": self.details,
        }

    def to_json(self) -> str:
        """Serialize the error as a compact JSON string."""
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=True)


class SecretNotFoundError(InjectionError):
    """The source secret of a replication does not exist."""

    code = "secret_not_found"


class SecretReplicationError(InjectionError):
    """Reading or creating a replicated secret failed."""

    code = "secret_replication_failed"


class TenantUUIDError(InjectionError):
    """The tenant UUID could not be resolved from the DynaKube."""

    code = "tenant_uuid_unavailable"


class WorkloadLookupError(InjectionError):
    """The owning workload of a pod could not be resolved."""

    code = "workload_lookup_failed"


class ContainerAttributeError(InjectionError):
    """Attributes of a user container could not be derived."""

    code = "container_attributes_failed"


class DeadlineExceededError(InjectionError):
    """The request deadline expired during a blocking lookup."""

    code = "deadline_exceeded"


def ensure_injection_error(
    error: Exception,
    *,
    phase: str = "pipeline",
    details: dict[str, Any] | None = None,
) -> InjectionError:
    """Normalize unknown exceptions into a structured injection error."""
    if isinstance(error, InjectionError):
        return error

    merged_details = dict(details or {})
    merged_details.setdefault("exception_type", type(error).__name__)

    if isinstance(error, ApiException):
        merged_details.setdefault("status", error.status)
        return InjectionError(
            f"Kubernetes API error: {error.reason}",
            phase=phase,
            details=merged_details,
        )
    if isinstance(error, TimeoutError):
        return DeadlineExceededError(
            str(error) or "request deadline exceeded",
            phase=phase,
            details=merged_details,
        )

    return InjectionError(
        str(error) or "Unknown injection error",
        phase=phase,
        details=merged_details,
    )


__all__ = [
    "ContainerAttributeError",
    "DeadlineExceededError",
    "InjectionError",
    "SecretNotFoundError",
    "SecretReplicationError",
    "TenantUUIDError",
    "WorkloadLookupError",
    "ensure_injection_error",
]
