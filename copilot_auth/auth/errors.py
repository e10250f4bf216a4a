from __future__ import annotations


class AuthError(RuntimeError):
    """Base class for every failure raised by the credential lifecycle."""

    code = "auth_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return self.message


class NetworkError(AuthError):
    code = "network_error"


class ServerError(AuthError):
    code = "server_error"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProtocolError(AuthError):
    code = "protocol_error"

    def __init__(self, message: str, *, error: str | None = None) -> None:
        super().__init__(message)
        self.error = error


class DeviceFlowExpired(AuthError):
    code = "expired_token"


class DeviceFlowDenied(AuthError):
    code = "access_denied"


class DeviceFlowTimeout(AuthError):
    code = "timeout"


class DeviceFlowCancelled(AuthError):
    code = "cancelled"


class InvalidCredential(AuthError):
    code = "invalid_credential"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExchangeError(AuthError):
    code = "exchange_failed"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TokenUnavailable(AuthError):
    code = "token_unavailable"


class RefreshFailure(AuthError):
    code = "refresh_failed"
