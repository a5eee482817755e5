"""
Ladder data models and bracket arithmetic.

Provides immutable data transfer objects for ladder state, plus the pure
functions that seed a bracket, pair round winners and project a ladder's
visible state from its persisted matchups. Nothing here touches the
database; the operations layer feeds rows in and gets values out.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ladder_bot.database.models import LadderPhase
from ladder_bot.utils.constraints import LadderConstraints


@dataclass(frozen=True)
class RankedNomination:
    """One game in the nominations ranking."""
    game_id: int
    game_name: str
    votes: int


@dataclass(frozen=True)
class Pairing:
    """A matchup about to be created. No game B means a bye."""
    game_a_id: int
    game_a_name: str
    game_b_id: Optional[int] = None
    game_b_name: Optional[str] = None

    @property
    def is_bye(self) -> bool:
        return self.game_b_id is None


@dataclass(frozen=True)
class MatchupView:
    """A persisted matchup with its vote tally."""
    id: int
    round: int
    slot: int
    game_a_id: int
    game_a_name: str
    game_b_id: Optional[int]
    game_b_name: Optional[str]
    winner_game_id: Optional[int]
    votes_a: int = 0
    votes_b: int = 0

    @property
    def is_bye(self) -> bool:
        return self.game_b_id is None

    @property
    def is_resolved(self) -> bool:
        return self.winner_game_id is not None

    @property
    def winner_name(self) -> Optional[str]:
        if self.winner_game_id is None:
            return None
        if self.winner_game_id == self.game_a_id:
            return self.game_a_name
        return self.game_b_name or ''


@dataclass(frozen=True)
class Champion:
    """Winner of a ladder's final matchup."""
    game_id: int
    game_name: str
    ladder_id: int


@dataclass(frozen=True)
class LadderState:
    """Everything a caller needs to render a ladder."""
    guild_id: str
    ladder_id: int
    phase: str
    bracket_size: int
    constraints: Optional[LadderConstraints] = None
    constraints_display: Optional[str] = None
    top_games: Optional[List[RankedNomination]] = None
    current_round: Optional[int] = None
    matchups: Optional[List[MatchupView]] = None
    champion: Optional[Champion] = None
    previous_champion: Optional[Champion] = None

    @property
    def open_matchups(self) -> List[MatchupView]:
        return [m for m in self.matchups or [] if not m.is_resolved]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['constraints'] = self.constraints.to_dict() if self.constraints else None
        return data


@dataclass(frozen=True)
class LadderSummary:
    """One row of a guild's ladder history."""
    ladder_id: int
    phase: str
    bracket_size: int
    constraints_display: Optional[str]
    created_at: Optional[datetime]
    completed_at: Optional[datetime]
    champion: Optional[Champion] = None


@dataclass(frozen=True)
class NominationStats:
    """Vote totals for the current nominations phase."""
    total_votes: int
    total_games: int


@dataclass(frozen=True)
class NominationVoteRecord:
    """A single nomination vote for one game."""
    user_id: str
    platform: str
    category: Optional[str]
    timestamp: Optional[datetime]


@dataclass(frozen=True)
class GuildInfo:
    """A known guild."""
    guild_id: str
    guild_name: Optional[str]
    bracket_size: int


def seed_bracket(ranked: Sequence[RankedNomination]) -> List[Pairing]:
    """
    Pair highest seed against lowest seed.

    With ranked entries r[0..n-1] (r[0] has the most votes), r[i] meets
    r[n-1-i]. When n is odd the middle entry gets a bye, placed after the
    paired matchups.
    """
    n = len(ranked)
    pairings = []
    for i in range(n // 2):
        high = ranked[i]
        low = ranked[n - 1 - i]
        pairings.append(Pairing(high.game_id, high.game_name, low.game_id, low.game_name))
    if n % 2 == 1:
        middle = ranked[n // 2]
        pairings.append(Pairing(middle.game_id, middle.game_name))
    return pairings


def resolve_winner(game_a_id: int, game_b_id: Optional[int], votes_a: int, votes_b: int) -> int:
    """Ties and byes go to game A."""
    if game_b_id is None:
        return game_a_id
    return game_a_id if votes_a >= votes_b else game_b_id


def pair_winners(resolved_round: Sequence[MatchupView]) -> List[Pairing]:
    """
    Build the next round from a fully resolved round.

    Winners are paired in slot order (0 vs 1, 2 vs 3, ...). An odd winner
    out gets a bye at the end of the next round.
    """
    ordered = sorted(resolved_round, key=lambda m: m.slot)
    winners = [(m.winner_game_id, m.winner_name) for m in ordered]
    pairings = []
    for i in range(0, len(winners) - 1, 2):
        (a_id, a_name), (b_id, b_name) = winners[i], winners[i + 1]
        pairings.append(Pairing(a_id, a_name, b_id, b_name))
    if len(winners) % 2 == 1:
        last_id, last_name = winners[-1]
        pairings.append(Pairing(last_id, last_name))
    return pairings


def champion_from_matchups(matchups: Sequence[MatchupView], ladder_id: int) -> Optional[Champion]:
    """The champion exists once the latest round is a single resolved matchup."""
    if not matchups:
        return None
    latest_round = max(m.round for m in matchups)
    final_round = [m for m in matchups if m.round == latest_round]
    if len(final_round) != 1 or not final_round[0].is_resolved:
        return None
    final = final_round[0]
    return Champion(game_id=final.winner_game_id, game_name=final.winner_name, ladder_id=ladder_id)


def project_ladder_state(
    guild_id: str,
    ladder,
    top_games: Optional[List[RankedNomination]] = None,
    matchups: Optional[List[MatchupView]] = None,
    previous_champion: Optional[Champion] = None,
) -> LadderState:
    """
    Derive the visible ladder state from persisted rows.

    The bracket itself decides whether the ladder is finished: a bracket
    whose latest round is one resolved matchup reports phase ``complete``
    and its champion even if the stored phase still says ``bracket``.
    """
    phase = ladder.phase.value if isinstance(ladder.phase, LadderPhase) else str(ladder.phase)
    constraints = LadderConstraints.from_json(ladder.constraints)

    current_round = None
    champion = None
    ordered = None

    if phase == LadderPhase.NOMINATIONS.value:
        top_games = list(top_games or [])
    else:
        top_games = None
        ordered = sorted(matchups or [], key=lambda m: (m.round, m.slot))
        current_round = max((m.round for m in ordered), default=0)
        champion = champion_from_matchups(ordered, ladder.id)
        if champion is not None:
            phase = LadderPhase.COMPLETE.value

    return LadderState(
        guild_id=guild_id,
        ladder_id=ladder.id,
        phase=phase,
        bracket_size=ladder.bracket_size,
        constraints=constraints,
        constraints_display=ladder.constraints_display or None,
        top_games=top_games,
        current_round=current_round,
        matchups=ordered,
        champion=champion,
        previous_champion=previous_champion if phase == LadderPhase.NOMINATIONS.value else None,
    )
