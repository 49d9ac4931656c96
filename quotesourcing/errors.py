"""Failure taxonomy for sourcing, selection and calling."""

from dataclasses import dataclass, field
from enum import Enum


class AdapterFailureReason(str, Enum):
    TIMEOUT = "timeout"
    AUTHENTICATION_FAILED = "authentication_failed"
    FIELD_NOT_FOUND = "field_not_found"
    NOT_FOUND = "not_found"
    TRANSPORT_ERROR = "transport_error"


class AdapterError(Exception):
    """Raised inside an adapter; converted to AdapterFailure by attempt()."""

    def __init__(self, reason: AdapterFailureReason, message: str = ""):
        super().__init__(message or reason.value)
        self.reason = reason
        self.message = message or reason.value


@dataclass(frozen=True)
class AdapterFailure:
    """Normal (non-exceptional) outcome of an adapter that produced no quote."""

    adapter: str
    reason: AdapterFailureReason
    message: str = ""


class SelectionErrorReason(str, Enum):
    NO_CANDIDATES = "no_candidates"


class SelectionError(Exception):
    def __init__(self, reason: SelectionErrorReason, message: str = ""):
        super().__init__(message or reason.value)
        self.reason = reason


class CallFailureReason(str, Enum):
    CONNECT_FAILED = "connect_failed"
    TIMEOUT = "timeout"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    UNKNOWN_VENDOR = "unknown_vendor"
    NOT_CALLABLE = "not_callable"
    UNKNOWN_CALL = "unknown_call"


class CallError(Exception):
    def __init__(self, reason: CallFailureReason, message: str = "", call_id: str | None = None):
        super().__init__(message or reason.value)
        self.reason = reason
        self.call_id = call_id


class InvalidStateTransition(CallError):
    def __init__(self, message: str):
        super().__init__(CallFailureReason.INVALID_STATE_TRANSITION, message)


class SourcingFailureReason(str, Enum):
    ALL_SOURCES_EXHAUSTED = "all_sources_exhausted"


class EscalationStatus(str, Enum):
    PENDING_VENDOR_CALLBACK = "pending_vendor_callback"
    CALLS_FAILED = "calls_failed"
    NO_CALLABLE_VENDORS = "no_callable_vendors"
    DISABLED = "disabled"


@dataclass(frozen=True)
class SourcingFailure:
    """Returned when cache, every adapter and the call escalation came up empty."""

    reason: SourcingFailureReason
    escalation: EscalationStatus
    adapter_failures: tuple[AdapterFailure, ...] = ()
    call_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def message(self) -> str:
        if self.escalation == EscalationStatus.PENDING_VENDOR_CALLBACK:
            return "Pending vendor callback"
        return "Needs manual follow-up"


class RemoteFault(Exception):
    """Transport or business fault reported by the remote pricing service."""

    def __init__(self, operation: str, message: str, code: str | None = None):
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.message = message
        self.code = code


class ConfigError(Exception):
    """Configuration failed validation at load time."""
