"""
Tests for the matchup vote views.

discord.ui.View needs a running event loop, so view construction happens
inside async tests.
"""

import pytest

from ladder_bot.data_models.ladder import MatchupView
from ladder_bot.ui.views import (
    MATCHUPS_PER_VIEW, MatchupVoteView, build_vote_views, parse_vote_custom_id,
)
from tests.conftest import GUILD_ID


def make_round(count, round_number=1, first_id=100):
    return [
        MatchupView(
            id=first_id + slot,
            round=round_number,
            slot=slot,
            game_a_id=slot * 2 + 1,
            game_a_name=f"Game {slot * 2 + 1}",
            game_b_id=slot * 2 + 2,
            game_b_name=f"Game {slot * 2 + 2}",
            winner_game_id=None,
        )
        for slot in range(count)
    ]


def button_ids(view):
    return [item.custom_id for item in view.children]


@pytest.mark.parametrize("custom_id, expected", [
    ("matchup:12:1001", (12, 1001)),
    ("matchup:12", None),
    ("other:12:1001", None),
    ("matchup:x:1001", None),
    (None, None),
])
def test_parse_vote_custom_id(custom_id, expected):
    assert parse_vote_custom_id(custom_id) == expected


async def test_sixteen_matchup_round_gets_a_button_for_every_game():
    matchups = make_round(16)
    views = build_vote_views(None, GUILD_ID, matchups)

    assert len(views) == 2
    assert [len(v.children) for v in views] == [20, 12]
    ids = [custom_id for view in views for custom_id in button_ids(view)]
    expected = [f"matchup:{m.id}:{game}" for m in matchups for game in (m.game_a_id, m.game_b_id)]
    assert ids == expected


async def test_two_matchups_share_each_row():
    [view] = build_vote_views(None, GUILD_ID, make_round(MATCHUPS_PER_VIEW))

    rows = [item.row for item in view.children]
    assert max(rows) == 4
    assert all(rows.count(row) == 4 for row in set(rows))
    assert view.children[0].label == "1. Game 1"
    assert view.children[-1].label == "10. Game 20"


async def test_byes_and_resolved_matchups_get_no_buttons():
    matchups = make_round(3)
    bye = MatchupView(id=200, round=1, slot=3, game_a_id=99, game_a_name="Bye Game",
                      game_b_id=None, game_b_name=None, winner_game_id=None)
    resolved = MatchupView(id=201, round=1, slot=4, game_a_id=97, game_a_name="Done A",
                           game_b_id=98, game_b_name="Done B", winner_game_id=97)

    [view] = build_vote_views(None, GUILD_ID, matchups + [bye, resolved])
    assert len(view.children) == 6
    assert not any(custom_id.startswith("matchup:20") for custom_id in button_ids(view))


async def test_round_with_nothing_to_vote_on_has_no_views():
    assert build_vote_views(None, GUILD_ID, []) == []


async def test_single_view_rejects_more_matchups_than_fit():
    with pytest.raises(ValueError):
        MatchupVoteView(None, GUILD_ID, make_round(MATCHUPS_PER_VIEW + 1))
