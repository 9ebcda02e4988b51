# certrotate/errors.py
from __future__ import annotations


class RotationError(Exception):
    """Base class for every terminal failure of a rotation run."""


class PreconditionError(RotationError):
    pass


class ValidationError(RotationError):
    pass


class UnsupportedKeyType(ValidationError):
    pass


class MismatchError(RotationError):
    pass


class SourceNotFoundError(RotationError):
    pass


class SelectionError(RotationError):
    pass


class FetchError(RotationError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConversionError(RotationError):
    pass


class InstallError(RotationError):
    pass


class RestartVerificationFailed(RotationError):
    pass
