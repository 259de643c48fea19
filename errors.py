"""Exception types shared by the adapters, the search pipeline and the tools."""
from typing import List, Optional


class AdsError(Exception):
    """Base class for every error raised by this server."""

    retryable = False

    def __init__(self, message: str, platform: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.platform = platform

    def __str__(self) -> str:
        return self.message


class CommandInvalid(AdsError):
    """The search command failed validation."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = list(errors)


class CredentialMissing(AdsError):
    """Platform credentials are not configured; the platform is skipped."""


class AuthFailed(AdsError):
    """The vendor rejected the credentials or token refresh failed."""

    retryable = True


class CredentialError(AdsError):
    """Authentication kept failing; the credentials need fixing."""


class VendorError(AdsError):
    """Non-success reply from a vendor API."""

    def __init__(self, message: str, platform: Optional[str] = None, code=None):
        super().__init__(message, platform)
        self.code = code


class RateLimited(VendorError):
    retryable = True


class PlatformTimeout(AdsError):
    retryable = True

    def __init__(self, platform: Optional[str] = None):
        super().__init__("timeout", platform)


class RateFetchFailed(AdsError):
    """A single exchange-rate lookup failed. Handled inside the rate service."""

    retryable = True


class ReportFileError(AdsError):
    """Writing or validating an HTML report file failed."""
