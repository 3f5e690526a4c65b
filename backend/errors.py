from typing import Any

USER_REJECTION_MARKER = "user rejected transaction"
USER_REJECTION_CODE = 4001


class VotingError(Exception):
    pass


class UserRejection(VotingError):
    pass


class EncryptionFailure(VotingError):
    pass


class ChainCallFailure(VotingError):
    pass


class DecryptionVerificationFailure(VotingError):
    pass


class InitializationFailure(VotingError):
    pass


class WalletNotConnected(VotingError):
    pass


class ActionInProgress(VotingError):
    pass


def error_reason(exc: BaseException | None) -> str:
    if exc is None:
        return "Unknown error"
    message = str(exc).strip()
    return message or "Unknown error"


def _error_code(exc: BaseException) -> Any:
    code = getattr(exc, "code", None)
    if code is None and exc.args and isinstance(exc.args[0], dict):
        code = exc.args[0].get("code")
    return code


def is_user_rejection(exc: BaseException) -> bool:
    if isinstance(exc, UserRejection):
        return True
    cause: BaseException | None = exc
    while cause is not None:
        if USER_REJECTION_MARKER in str(cause).lower():
            return True
        if _error_code(cause) == USER_REJECTION_CODE:
            return True
        cause = cause.__cause__
    return False
