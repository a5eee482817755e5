"""Tests for the ladder store: upserts, rankings and lookups on a real SQLite file."""

import pytest

from ladder_bot.database.models import LadderPhase
from ladder_bot.data_models.ladder import Pairing
from tests.conftest import GUILD_ID, OTHER_GUILD_ID


async def make_ladder(db, guild_id=GUILD_ID, bracket_size=16):
    await db.ensure_guild(guild_id)
    return await db.create_ladder(guild_id, bracket_size)


async def test_ensure_guild_is_idempotent(db):
    await db.ensure_guild(GUILD_ID, "Test Server")
    await db.ensure_guild(GUILD_ID)
    await db.ensure_guild(GUILD_ID)

    guilds = await db.list_guilds()
    assert len(guilds) == 1
    assert guilds[0].guild_name == "Test Server"
    assert guilds[0].bracket_size == 16


async def test_ensure_guild_refreshes_name(db):
    await db.ensure_guild(GUILD_ID, "Old Name")
    await db.ensure_guild(GUILD_ID, "New Name")
    guild = await db.get_guild(GUILD_ID)
    assert guild.guild_name == "New Name"


async def test_active_ladder_excludes_complete(db):
    ladder = await make_ladder(db)
    assert (await db.get_active_ladder(GUILD_ID)).id == ladder.id

    ladder = await db.update_ladder_phase(ladder, LadderPhase.BRACKET)
    ladder = await db.update_ladder_phase(ladder, LadderPhase.COMPLETE)

    assert await db.get_active_ladder(GUILD_ID) is None
    completed = await db.get_latest_completed_ladder(GUILD_ID)
    assert completed.id == ladder.id
    assert completed.nominations_closed_at is not None
    assert completed.completed_at is not None


async def test_nomination_upsert_keeps_one_vote_per_user_and_channel(db):
    ladder = await make_ladder(db)
    await db.upsert_nomination_vote(ladder.id, GUILD_ID, 1001, "Elden Ring", "u1", "discord", "RPG")
    await db.upsert_nomination_vote(ladder.id, GUILD_ID, 1001, "Elden Ring", "u1", "discord", "Action")

    assert await db.count_nomination_votes(ladder.id) == 1
    votes = await db.get_nomination_votes_for_game(ladder.id, 1001)
    assert [(v.user_id, v.platform, v.category) for v in votes] == [("u1", "discord", "Action")]


async def test_same_user_counts_once_per_channel(db):
    ladder = await make_ladder(db)
    await db.upsert_nomination_vote(ladder.id, GUILD_ID, 1001, "Elden Ring", "u1", "discord", None)
    await db.upsert_nomination_vote(ladder.id, GUILD_ID, 1001, "Elden Ring", "u1", "web", None)

    top = await db.get_top_nominations(ladder.id, 10)
    assert [(n.game_id, n.votes) for n in top] == [(1001, 2)]


async def test_top_nominations_order_and_tie_break(db):
    ladder = await make_ladder(db)
    for game_id, votes in [(30, 1), (20, 2), (10, 2), (40, 3)]:
        for n in range(votes):
            await db.upsert_nomination_vote(ladder.id, GUILD_ID, game_id, f"Game {game_id}", f"u{n}", "web", None)

    top = await db.get_top_nominations(ladder.id, 10)
    assert [(n.game_id, n.votes) for n in top] == [(40, 3), (10, 2), (20, 2), (30, 1)]
    assert [n.game_id for n in await db.get_top_nominations(ladder.id, 2)] == [40, 10]
    assert await db.count_nominated_games(ladder.id) == 4
    assert await db.count_nomination_votes(ladder.id) == 8


async def test_nominations_are_scoped_to_ladder_and_guild(db):
    first = await make_ladder(db)
    other = await make_ladder(db, OTHER_GUILD_ID)
    await db.upsert_nomination_vote(first.id, GUILD_ID, 1, "A", "u1", "web", None)
    await db.upsert_nomination_vote(other.id, OTHER_GUILD_ID, 2, "B", "u1", "web", None)

    assert [n.game_id for n in await db.get_top_nominations(first.id, 10)] == [1]
    assert [n.game_id for n in await db.get_top_nominations(other.id, 10)] == [2]

    assert await db.delete_nomination_votes(first.id) == 1
    assert await db.get_top_nominations(first.id, 10) == []
    assert await db.count_nomination_votes(other.id) == 1


async def test_matchups_get_slots_in_pairing_order(db):
    ladder = await make_ladder(db)
    pairings = [Pairing(1, "A", 4, "D"), Pairing(2, "B", 3, "C"), Pairing(5, "E")]
    await db.create_matchups(GUILD_ID, ladder.id, 1, pairings)

    matchups = await db.get_matchups(ladder.id, 1)
    assert [(m.slot, m.game_a_id, m.game_b_id) for m in matchups] == [(0, 1, 4), (1, 2, 3), (2, 5, None)]
    assert matchups[2].is_bye
    assert await db.get_max_round(ladder.id) == 1
    assert await db.get_matchup(OTHER_GUILD_ID, matchups[0].id) is None


async def test_matchup_vote_upsert_changes_choice(db):
    ladder = await make_ladder(db)
    [m] = await db.create_matchups(GUILD_ID, ladder.id, 1, [Pairing(1, "A", 2, "B")])

    await db.upsert_matchup_vote(GUILD_ID, m.id, "u1", "discord", 1)
    await db.upsert_matchup_vote(GUILD_ID, m.id, "u2", "discord", 1)
    await db.upsert_matchup_vote(GUILD_ID, m.id, "u1", "discord", 2)
    await db.upsert_matchup_vote(GUILD_ID, m.id, "u1", "web", 2)

    assert await db.get_matchup_vote_counts([m.id]) == {m.id: {1: 1, 2: 2}}
    assert await db.get_matchup_vote_counts([]) == {}


async def test_set_matchup_winner(db):
    ladder = await make_ladder(db)
    [m] = await db.create_matchups(GUILD_ID, ladder.id, 1, [Pairing(1, "A", 2, "B")])
    await db.set_matchup_winner(m, 2)

    stored = await db.get_matchup(GUILD_ID, m.id)
    assert stored.winner_game_id == 2
    assert stored.resolved_at is not None


async def test_game_cache_round_trip_and_overwrite(db):
    await db.ensure_guild(GUILD_ID)
    assert await db.get_game_cache(GUILD_ID, 1001) is None

    await db.set_game_cache(GUILD_ID, 1001, {'id': 1001, 'name': 'Elden Ring'})
    await db.set_game_cache(GUILD_ID, 1001, {'id': 1001, 'name': 'Elden Ring', 'rating': 95})

    assert await db.get_game_cache(GUILD_ID, 1001) == {'id': 1001, 'name': 'Elden Ring', 'rating': 95}
    assert await db.get_game_cache(OTHER_GUILD_ID, 1001) is None


async def test_transaction_rolls_back_on_error(db):
    await db.ensure_guild(GUILD_ID)
    with pytest.raises(RuntimeError):
        async with db.transaction() as session:
            await db.create_ladder(GUILD_ID, 8, session=session)
            raise RuntimeError("boom")

    assert await db.list_ladders(GUILD_ID) == []
