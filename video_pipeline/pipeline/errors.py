"""
Error taxonomy for the media pipeline.

Every error carries an HTTP status so the API layer can translate it without
knowing individual error types.
"""
from typing import Any, Optional


class PipelineError(Exception):
    """Base class for pipeline errors."""
    status_code = 500
    error_code = "pipeline_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "error": self.error_code, **self.details}


# ── Validation (rejected before any side effect) ──

class ValidationError(PipelineError):
    status_code = 400
    error_code = "validation_error"


class InvalidVariables(ValidationError):
    error_code = "invalid_variables"

    def __init__(self, template_type: str, missing: list[str]):
        super().__init__(
            f"Missing required story variables for {template_type}: {', '.join(missing)}",
            template_type=template_type,
            missing_variables=missing,
        )
        self.missing = missing


# ── Readiness (rejected before any side effect) ──

class NotReadyError(PipelineError):
    status_code = 409
    error_code = "not_ready"


class AssetsNotReady(NotReadyError):
    error_code = "assets_not_ready"

    def __init__(self, project_id, missing_slots: list[str]):
        super().__init__(
            f"Project {project_id} is missing approved assets for: {', '.join(missing_slots)}",
            missing_slots=missing_slots,
        )
        self.missing_slots = missing_slots


# ── External providers ──

class ProviderError(PipelineError):
    """Image, speech or render backend failure. The message is the provider's raw error text."""
    status_code = 502
    error_code = "provider_error"

    def __init__(self, message: str, provider: Optional[str] = None, **details: Any):
        super().__init__(message, provider=provider, **details)
        self.provider = provider


# ── Conflicts (rejected atomically at the storage layer) ──

class ConflictError(PipelineError):
    status_code = 409
    error_code = "conflict"


class AlreadyInFlight(ConflictError):
    error_code = "already_in_flight"


class AlreadyAssigned(ConflictError):
    error_code = "already_assigned"


class InvalidTransition(ConflictError):
    error_code = "invalid_transition"


# ── Lookups ──

class NotFoundError(PipelineError):
    status_code = 404
    error_code = "not_found"
