"""Error taxonomy for the signal engine.

None of these are fatal to the process. Callers degrade to "no signal"
(fetch/insufficient data), "drop message" (parse) or "reconnect" (transport).
"""


class SignalEngineError(Exception):
    """Base class for all signal engine errors."""


class TransportError(SignalEngineError):
    """Streaming socket is closed, missing or errored."""


class FetchError(SignalEngineError):
    """REST request failed or returned a malformed payload."""

    def __init__(self, message: str, symbol: str | None = None, status: int | None = None):
        super().__init__(message)
        self.symbol = symbol
        self.status = status

    def __str__(self) -> str:
        base = super().__str__()
        if self.symbol and self.status is not None:
            return f"{self.symbol}: {base} (HTTP {self.status})"
        if self.symbol:
            return f"{self.symbol}: {base}"
        return base


class ParseError(SignalEngineError):
    """Streaming message could not be decoded."""


class InsufficientDataError(SignalEngineError):
    """Not enough candles to evaluate the decision rules."""

    def __init__(self, required: int, available: int):
        super().__init__(f"need {required} bars, got {available}")
        self.required = required
        self.available = available
