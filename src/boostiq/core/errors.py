"""Exception hierarchy for the scanner."""

from typing import Optional


class ScannerError(Exception):
    """Base error carrying the cache key and stage it was raised from."""

    def __init__(self, message: str, key: Optional[str] = None, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.key = key
        self.stage = stage

    def with_context(self, key: Optional[str] = None, stage: Optional[str] = None) -> "ScannerError":
        """Fill in missing context and return self."""
        if self.key is None:
            self.key = key
        if self.stage is None:
            self.stage = stage
        return self

    def __str__(self) -> str:
        context = []
        if self.key:
            context.append(f"key={self.key}")
        if self.stage:
            context.append(f"stage={self.stage}")
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class MalformedInputError(ScannerError):
    """The upstream payload is not a collection of records."""


class UpstreamUnavailableError(ScannerError):
    """The data source failed (network, non-2xx status, exchange error)."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        stage: Optional[str] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message, key=key, stage=stage)
        self.status = status


class UpstreamTimeoutError(UpstreamUnavailableError):
    """The data source did not answer within the request timeout."""
