"""
Ladder constraint evaluation.

A ladder may restrict which games can be nominated by genre, game mode,
platform and release year. Filters are stored as resolved catalog ids
(``LadderConstraints``); admins type them as names (``ConstraintInput``)
which the catalog resolver turns into ids when the ladder starts.

Evaluation is pure: each present clause is checked on its own and all of
them must pass. A clause with ids requires the game to list at least one
of them; a game that lists none of that attribute fails the clause.
"""

import json
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional


@dataclass(frozen=True)
class LadderConstraints:
    """Resolved filter stored on a ladder. Empty means no restriction."""
    genre_ids: List[int] = field(default_factory=list)
    game_mode_ids: List[int] = field(default_factory=list)
    platform_ids: List[int] = field(default_factory=list)
    release_year: Optional[int] = None
    release_year_min: Optional[int] = None
    release_year_max: Optional[int] = None

    @property
    def has_year_clause(self) -> bool:
        return (
            self.release_year is not None
            or self.release_year_min is not None
            or self.release_year_max is not None
        )

    def is_empty(self) -> bool:
        return not (self.genre_ids or self.game_mode_ids or self.platform_ids or self.has_year_clause)

    def to_dict(self) -> Dict[str, Any]:
        """Only the clauses that are set."""
        return {key: value for key, value in asdict(self).items() if value not in (None, [])}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['LadderConstraints']:
        if not data:
            return None
        constraints = cls(
            genre_ids=[int(i) for i in data.get('genre_ids') or []],
            game_mode_ids=[int(i) for i in data.get('game_mode_ids') or []],
            platform_ids=[int(i) for i in data.get('platform_ids') or []],
            release_year=data.get('release_year'),
            release_year_min=data.get('release_year_min'),
            release_year_max=data.get('release_year_max'),
        )
        return None if constraints.is_empty() else constraints

    @classmethod
    def from_json(cls, raw: Optional[str]) -> Optional['LadderConstraints']:
        """Parse the stored column. Blank or unreadable JSON means no restriction."""
        if not raw or not raw.strip():
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict):
            return None
        return cls.from_dict(data)


@dataclass(frozen=True)
class ConstraintInput:
    """Filter as typed by an admin when starting a ladder."""
    genre_names: List[str] = field(default_factory=list)
    game_mode_names: List[str] = field(default_factory=list)
    platform_names: List[str] = field(default_factory=list)
    release_year: Optional[int] = None
    release_year_min: Optional[int] = None
    release_year_max: Optional[int] = None

    def has_any(self) -> bool:
        return bool(
            self.genre_names or self.game_mode_names or self.platform_names
            or self.release_year is not None
            or self.release_year_min is not None
            or self.release_year_max is not None
        )

    @staticmethod
    def split_names(raw: Optional[str]) -> List[str]:
        """Split a comma-separated option value into trimmed names."""
        if not raw:
            return []
        return [part.strip() for part in raw.split(',') if part.strip()]


def build_constraints_display(constraint_input: Optional[ConstraintInput]) -> Optional[str]:
    """Human-readable rendering of the filter, e.g. ``Genre: RPG · Year: 2020–2023``."""
    if not constraint_input or not constraint_input.has_any():
        return None

    parts = []
    if constraint_input.genre_names:
        parts.append(f"Genre: {', '.join(constraint_input.genre_names)}")
    if constraint_input.release_year is not None:
        parts.append(f"Year: {constraint_input.release_year}")
    elif constraint_input.release_year_min is not None or constraint_input.release_year_max is not None:
        low = constraint_input.release_year_min if constraint_input.release_year_min is not None else '?'
        high = constraint_input.release_year_max if constraint_input.release_year_max is not None else '?'
        parts.append(f"Year: {low}–{high}")
    if constraint_input.game_mode_names:
        parts.append(f"Mode: {', '.join(constraint_input.game_mode_names)}")
    if constraint_input.platform_names:
        parts.append(f"Platform: {', '.join(constraint_input.platform_names)}")
    return " · ".join(parts)


def _attribute_ids(values: Any) -> List[int]:
    """Catalog lists hold either expanded objects ({'id': 5, 'name': ...}) or bare ids."""
    if not isinstance(values, (list, tuple)):
        return []
    ids = []
    for value in values:
        item_id = value.get('id') if isinstance(value, dict) else value
        if item_id:
            ids.append(item_id)
    return ids


def _intersects(required: Iterable[int], present: List[int]) -> bool:
    return bool(present) and any(item_id in present for item_id in required)


def release_year_of(detail: Optional[Dict[str, Any]]) -> Optional[int]:
    """UTC year of ``first_release_date`` (unix seconds), if recorded."""
    timestamp = (detail or {}).get('first_release_date')
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).year


def failed_clause(detail: Optional[Dict[str, Any]], constraints: Optional[LadderConstraints]) -> Optional[str]:
    """
    Name of the first clause the game fails, or None if it is eligible.

    Clauses are checked in the order genre, year, mode, platform.
    """
    if not constraints or constraints.is_empty():
        return None
    detail = detail or {}

    if constraints.genre_ids and not _intersects(constraints.genre_ids, _attribute_ids(detail.get('genres'))):
        return 'genre'

    if constraints.has_year_clause:
        year = release_year_of(detail)
        if year is None:
            return 'year'
        if constraints.release_year is not None and year != constraints.release_year:
            return 'year'
        if constraints.release_year_min is not None and year < constraints.release_year_min:
            return 'year'
        if constraints.release_year_max is not None and year > constraints.release_year_max:
            return 'year'

    if constraints.game_mode_ids and not _intersects(constraints.game_mode_ids, _attribute_ids(detail.get('game_modes'))):
        return 'mode'

    if constraints.platform_ids and not _intersects(constraints.platform_ids, _attribute_ids(detail.get('platforms'))):
        return 'platform'

    return None


def matches(detail: Optional[Dict[str, Any]], constraints: Optional[LadderConstraints]) -> bool:
    """True if the game satisfies every clause of the constraint set."""
    return failed_clause(detail, constraints) is None
