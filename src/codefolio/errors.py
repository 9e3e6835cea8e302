"""Exception types for codefolio.

Only storage errors (sqlite3) are fatal. Everything raised from here is
recoverable and reported back to the caller.
"""
from __future__ import annotations


class CodefolioError(Exception):
    """Base class for all codefolio errors."""


class UpstreamUnavailable(CodefolioError):
    """A platform adapter failed or did not answer in time."""

    def __init__(self, platform: str, reason: str) -> None:
        super().__init__(f"{platform}: {reason}")
        self.platform = platform
        self.reason = reason


class VerificationFailed(CodefolioError):
    """No accepted submission backs an explicit challenge completion."""


class InvalidDateRange(CodefolioError):
    """A calendar window is malformed (bad date, empty or inverted range)."""


class InvalidTransition(CodefolioError):
    """A challenge action is not allowed from the challenge's current state."""


class UnknownPlatform(CodefolioError):
    """A platform identifier outside the supported set."""


class ContestNotFound(CodefolioError):
    pass


class ContestAlreadyStarted(CodefolioError):
    pass


class NoEligibleProblem(CodefolioError):
    """The problem bank has nothing at or below the difficulty ceiling."""
