"""
Exceptions raised by bracket generation and tournament storage.
"""


class BracketError(Exception):
    """Base class for errors raised while building bracket rounds."""


class InvalidRosterError(BracketError):
    """Raised when a roster is too small to be bracketed."""


class InsufficientWinnersError(BracketError):
    """Raised when a finished round does not have enough winners to pair."""


class StorageError(Exception):
    """Base class for tournament storage errors."""


class TournamentNotFoundError(StorageError):
    pass


class MatchNotFoundError(StorageError):
    pass


class DuplicateMatchError(StorageError):
    """Raised when inserted matches collide on (tournament, round, match number)."""


class RoundClosedError(StorageError):
    """Raised when a result is reported for a round whose successor already exists."""
