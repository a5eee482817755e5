"""Tests for ladder constraint evaluation and display."""

import pytest

from ladder_bot.utils.constraints import (
    ConstraintInput, LadderConstraints, build_constraints_display,
    failed_clause, matches, release_year_of,
)
from tests.conftest import BALDURS_GATE_3, DISCO_ELYSIUM, DOOM_ETERNAL, ELDEN_RING


class TestEvaluation:
    def test_no_constraints_accepts_anything(self):
        assert matches(ELDEN_RING, None)
        assert matches({}, LadderConstraints())
        assert matches(None, None)

    def test_genre_clause_needs_intersection(self):
        rpg = LadderConstraints(genre_ids=[12])
        assert matches(ELDEN_RING, rpg)
        assert not matches(DOOM_ETERNAL, rpg)
        assert failed_clause(DOOM_ETERNAL, rpg) == 'genre'

    def test_any_listed_genre_is_enough(self):
        constraints = LadderConstraints(genre_ids=[5, 31])
        assert matches(DOOM_ETERNAL, constraints)
        assert matches(DISCO_ELYSIUM, constraints)
        assert not matches(ELDEN_RING, constraints)

    def test_missing_attribute_fails_its_clause(self):
        game = {'id': 1, 'name': 'No data', 'first_release_date': 1645747200}
        assert failed_clause(game, LadderConstraints(genre_ids=[12])) == 'genre'
        assert failed_clause(game, LadderConstraints(game_mode_ids=[1])) == 'mode'
        assert failed_clause(game, LadderConstraints(platform_ids=[6])) == 'platform'

    def test_bare_id_lists_are_understood(self):
        game = {'genres': [12, 31], 'platforms': [6]}
        assert matches(game, LadderConstraints(genre_ids=[31], platform_ids=[6]))

    def test_exact_year(self):
        constraints = LadderConstraints(release_year=2022)
        assert matches(ELDEN_RING, constraints)
        assert failed_clause(BALDURS_GATE_3, constraints) == 'year'

    def test_year_range_is_inclusive(self):
        constraints = LadderConstraints(release_year_min=2020, release_year_max=2022)
        assert matches(DOOM_ETERNAL, constraints)
        assert matches(ELDEN_RING, constraints)
        assert not matches(DISCO_ELYSIUM, constraints)
        assert not matches(BALDURS_GATE_3, constraints)

    def test_open_ended_year_range(self):
        assert matches(BALDURS_GATE_3, LadderConstraints(release_year_min=2023))
        assert not matches(ELDEN_RING, LadderConstraints(release_year_min=2023))
        assert matches(DISCO_ELYSIUM, LadderConstraints(release_year_max=2019))

    def test_missing_release_date_fails_year(self):
        game = {'genres': [{'id': 12}]}
        assert failed_clause(game, LadderConstraints(release_year=2022)) == 'year'

    def test_clause_order_is_genre_year_mode_platform(self):
        constraints = LadderConstraints(genre_ids=[99], release_year=1990, game_mode_ids=[99], platform_ids=[99])
        assert failed_clause(ELDEN_RING, constraints) == 'genre'
        constraints = LadderConstraints(genre_ids=[12], release_year=1990, game_mode_ids=[99], platform_ids=[99])
        assert failed_clause(ELDEN_RING, constraints) == 'year'
        constraints = LadderConstraints(genre_ids=[12], release_year=2022, game_mode_ids=[99], platform_ids=[99])
        assert failed_clause(ELDEN_RING, constraints) == 'mode'
        constraints = LadderConstraints(genre_ids=[12], release_year=2022, game_mode_ids=[1], platform_ids=[99])
        assert failed_clause(ELDEN_RING, constraints) == 'platform'

    def test_all_clauses_must_pass(self):
        constraints = LadderConstraints(genre_ids=[12], release_year=2022, game_mode_ids=[2], platform_ids=[167])
        assert matches(ELDEN_RING, constraints)
        assert not matches(DISCO_ELYSIUM, constraints)


def test_release_year_is_utc():
    # 2022-12-31 23:59:59 UTC is still 2022 everywhere the check runs
    assert release_year_of({'first_release_date': 1672531199}) == 2022
    assert release_year_of({'first_release_date': 1672531200}) == 2023
    assert release_year_of({}) is None
    assert release_year_of(None) is None


class TestSerialization:
    def test_to_dict_keeps_only_set_clauses(self):
        constraints = LadderConstraints(genre_ids=[12], release_year_min=2020)
        assert constraints.to_dict() == {'genre_ids': [12], 'release_year_min': 2020}

    def test_json_round_trip(self):
        constraints = LadderConstraints(genre_ids=[12, 31], platform_ids=[6], release_year=2023)
        assert LadderConstraints.from_json(constraints.to_json()) == constraints

    @pytest.mark.parametrize("raw", [None, "", "   ", "{}", "not json", "[1, 2]"])
    def test_blank_or_unreadable_means_unconstrained(self, raw):
        assert LadderConstraints.from_json(raw) is None


class TestDisplay:
    def test_full_display(self):
        constraint_input = ConstraintInput(
            genre_names=['RPG', 'Adventure'],
            game_mode_names=['Single player'],
            platform_names=['PC'],
            release_year_min=2020,
            release_year_max=2023,
        )
        assert build_constraints_display(constraint_input) == (
            "Genre: RPG, Adventure · Year: 2020–2023 · Mode: Single player · Platform: PC"
        )

    def test_exact_year_wins_over_range(self):
        constraint_input = ConstraintInput(release_year=2021, release_year_min=2000)
        assert build_constraints_display(constraint_input) == "Year: 2021"

    def test_half_open_range(self):
        assert build_constraints_display(ConstraintInput(release_year_min=2020)) == "Year: 2020–?"

    def test_empty_input_has_no_display(self):
        assert build_constraints_display(ConstraintInput()) is None
        assert build_constraints_display(None) is None

    def test_split_names(self):
        assert ConstraintInput.split_names(" RPG, Action ,, ") == ['RPG', 'Action']
        assert ConstraintInput.split_names(None) == []
