"""Error taxonomy shared by the bot, the media pipeline and the HTTP surface."""

from __future__ import annotations


class LoopcamError(Exception):
    """Base error. `code` is stable and machine-readable; `status_code` is the HTTP mapping."""

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ConfigError(LoopcamError):
    code = "config_error"


class SessionNotFound(LoopcamError):
    code = "session_not_found"
    status_code = 404


class PreconditionViolation(LoopcamError):
    code = "precondition_violation"
    status_code = 409


class NotInMeeting(PreconditionViolation):
    code = "not_in_meeting"


class MediaNotReady(PreconditionViolation):
    code = "media_not_ready"


class DriverUnavailable(LoopcamError):
    code = "driver_unavailable"
    status_code = 503


class AuthenticationTimeout(LoopcamError):
    code = "authentication_timeout"
    status_code = 504


class AuthenticationRejected(LoopcamError):
    code = "authentication_rejected"
    status_code = 401


class JoinTimeout(LoopcamError):
    code = "join_timeout"
    status_code = 504


class AcquisitionFailure(LoopcamError):
    code = "acquisition_failure"
    status_code = 502


class NotFound(AcquisitionFailure):
    code = "not_found"
    status_code = 404


class TransferFailure(AcquisitionFailure):
    code = "transfer_failure"


class ConversionFailure(LoopcamError):
    code = "conversion_failure"
    status_code = 422

    def __init__(self, message: str | None = None, *, stderr: str = "") -> None:
        super().__init__(message)
        self.stderr = stderr


class VerificationFailure(LoopcamError):
    code = "verification_failure"
    status_code = 422


class InjectionFailure(LoopcamError):
    code = "injection_failure"

    def __init__(self, message: str | None = None, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason


class MediaNotFound(LoopcamError):
    code = "media_not_found"
    status_code = 404
