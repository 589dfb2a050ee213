from __future__ import annotations


class TradingError(RuntimeError):
    pass


class TransientFeedError(TradingError):
    """The pool price could not be read this tick; the caller retries next cycle."""


class ExecutionError(TradingError):
    pass


class MissingAccountError(ExecutionError):
    pass


class QuoteBuildError(ExecutionError):
    pass


class RelayRejectionError(ExecutionError):
    pass


class JitoBundleRateLimitError(RelayRejectionError):
    def __init__(self, message: str, *, retry_after_seconds: float | None = None) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds
