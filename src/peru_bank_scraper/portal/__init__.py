from .interceptor import (
    InterceptedRequest,
    InterceptedResponse,
    SubmissionStatusRecorder,
    install_interceptor,
    live_transport,
)
from .login import (
    BankUnavailable,
    BotDetected,
    InvalidCredentials,
    LoginErrorInfo,
    LoginOutcome,
    Success,
    Unknown,
    classify_login,
    require_session,
)

__all__ = [
    "InterceptedRequest",
    "InterceptedResponse",
    "SubmissionStatusRecorder",
    "install_interceptor",
    "live_transport",
    "LoginErrorInfo",
    "LoginOutcome",
    "Success",
    "InvalidCredentials",
    "BotDetected",
    "BankUnavailable",
    "Unknown",
    "classify_login",
    "require_session",
]
