"""
Custom exceptions for the ladder system with user-friendly error messages.

Every exception here is recoverable: callers surface ``user_message``
verbatim and keep running.
"""

from typing import Optional


class LadderException(Exception):
    """Base exception for ladder-related errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message


class WrongPhase(LadderException):
    """Raised when an operation is attempted in the wrong ladder phase."""
    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Ladder is not in {expected} phase (current phase: {actual})",
            f"❌ The ladder is not in the {expected} phase right now (it is in {actual})."
        )


class ConstraintViolation(LadderException):
    """Raised when a nomination does not satisfy the ladder's restrictions."""

    # Clause keys mapped to the words users see
    CLAUSE_LABELS = {
        'genre': 'genre',
        'year': 'release year',
        'mode': 'game mode',
        'platform': 'platform',
    }

    def __init__(self, game_name: str, clause: Optional[str], constraints_display: Optional[str] = None):
        self.game_name = game_name
        self.clause = clause
        restrictions = f" ({constraints_display})" if constraints_display else ""
        if clause:
            label = self.CLAUSE_LABELS.get(clause, clause)
            user_message = (
                f"❌ This round has restrictions{restrictions}. "
                f"**{game_name}** does not match the {label} restriction."
            )
        else:
            user_message = (
                f"❌ This round has restrictions (genre, year, game mode, or platform){restrictions}. "
                f"Could not verify **{game_name}** against them."
            )
        super().__init__(
            f"Game '{game_name}' rejected by ladder constraints (clause: {clause or 'unverifiable'})",
            user_message
        )


class InsufficientEntries(LadderException):
    """Raised when too few distinct games were nominated to seed a bracket."""
    def __init__(self, have: int, need: int = 2):
        self.have = have
        self.need = need
        super().__init__(
            f"Need at least {need} games to start bracket (have {have})",
            f"❌ Need at least {need} games to start the bracket (have {have}). Nominate more!"
        )


class NoOpenMatchups(LadderException):
    """Raised when closing a round that has nothing left to close."""
    def __init__(self):
        super().__init__(
            "No open matchups to close",
            "❌ There are no open matchups to close."
        )


class MatchupClosed(LadderException):
    """Raised when voting on a matchup that already has a winner."""
    def __init__(self, matchup_id: int):
        self.matchup_id = matchup_id
        super().__init__(
            f"Matchup {matchup_id} already closed",
            "❌ Voting for this matchup has already closed."
        )


class InvalidChoice(LadderException):
    """Raised when a matchup vote names a game that is not in the matchup."""
    def __init__(self, matchup_id: int, game_id: int):
        self.matchup_id = matchup_id
        self.game_id = game_id
        super().__init__(
            f"Game {game_id} is not part of matchup {matchup_id}",
            "❌ That game is not part of this matchup."
        )


class NotFound(LadderException):
    """Raised when a matchup or ladder does not exist in this guild."""
    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} {entity_id} not found",
            f"❌ {entity} not found in this server!"
        )


class UnknownFilterValue(LadderException):
    """Raised when a ladder filter name does not resolve to a catalog entry."""
    def __init__(self, category: str, name: str):
        self.category = category
        self.name = name
        super().__init__(
            f"Unknown {category}: \"{name}\"",
            f"❌ Unknown {category}: \"{name}\". Use `/ladder filters` to see valid names."
        )


class LookupFailure(LadderException):
    """Raised when the game catalog is unreachable or returns nothing."""
    def __init__(self, operation: str, details: str = None):
        self.operation = operation
        super().__init__(
            f"Catalog lookup failed during {operation}: {details}",
            "❌ The game catalog is unavailable right now. Please try again later."
        )


class InvalidBracketSize(LadderException):
    """Raised when a bracket size is outside the accepted values."""
    def __init__(self, size, allowed: str = "8, 16, or 32"):
        self.size = size
        super().__init__(
            f"Invalid bracket size {size}",
            f"❌ Bracket size must be {allowed}."
        )


class InvalidVoteChannel(LadderException):
    """Raised when a vote arrives from an unknown channel."""
    def __init__(self, channel: str):
        self.channel = channel
        super().__init__(
            f"Invalid vote channel {channel!r}",
            "❌ Votes must come from the web app or Discord."
        )
