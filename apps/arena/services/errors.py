"""
Error taxonomy for wallet, tournament and settlement operations.

Every error is a ValueError so route handlers can keep their
``except ValueError`` fallbacks; the status code each kind maps to lives
on the class.
"""


class ArenaError(ValueError):
    """Base class for errors raised by arena services."""

    status_code = 400


class NotFound(ArenaError):
    """Referenced user, tournament, withdrawal, game or ticket doesn't exist."""

    status_code = 404


class InsufficientFundsError(ArenaError):
    """A balance invariant would be violated."""


class InsufficientFunds(InsufficientFundsError):
    """Balance adjustment would take a wallet below zero."""


class InsufficientBalance(InsufficientFundsError):
    """Deposit plus winnings can't cover an entry fee."""


class InsufficientWinnings(InsufficientFundsError):
    """Winnings balance can't cover a withdrawal."""


class InvalidAmount(ArenaError):
    """Amount is zero, negative or below a configured minimum."""


class InvalidTeam(ArenaError):
    """Team roster doesn't fit the tournament's team type."""


class AccountSuspended(ArenaError):
    """Banned accounts can't move money or join tournaments."""

    status_code = 403


class TournamentFull(ArenaError):
    """Tournament has no free slots."""

    status_code = 409


class AlreadyJoined(ArenaError):
    """User already holds a slot in this tournament."""

    status_code = 409


class InvalidTransition(ArenaError):
    """Requested state change isn't legal from the current state."""

    status_code = 409


class TournamentClosed(InvalidTransition):
    """Tournament is no longer accepting players."""


class ResultsAlreadySubmitted(InvalidTransition):
    """Results were already recorded and paid out for this tournament."""


class TransientConflict(ArenaError):
    """Optimistic-concurrency conflict that outlived every retry."""

    status_code = 503


class ConfigurationError(ArenaError):
    """Storage layer is unavailable or misconfigured."""

    status_code = 503
