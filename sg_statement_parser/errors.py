from __future__ import annotations


class StatementError(RuntimeError):
    pass


class ParseError(StatementError):
    """Raised to hosts (CLI, web API) when a document cannot be acquired at all."""


class MalformedInput(StatementError):
    pass


class UnparseableAmount(StatementError):
    def __init__(self, raw: str, reason: str) -> None:
        super().__init__(f"Invalid money token {raw!r}: {reason}")
        self.raw = raw
        self.reason = reason
