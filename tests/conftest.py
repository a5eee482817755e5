"""
Pytest configuration and fixtures for the ladder bot tests.

Store and engine tests run against a real Database bound to a temporary
SQLite file. The catalog is a FakeIGDBClient (in-memory games, genres,
modes and platforms) wrapped in the real CatalogResolver.
"""

import os

# Config reads the environment at import time
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("DEBUG", "false")

from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from ladder_bot.database.database import Database
from ladder_bot.operations.ladder_operations import LadderOperations
from ladder_bot.services.catalog_resolver import CatalogResolver
from ladder_bot.utils.ladder_exceptions import LookupFailure

GUILD_ID = "111111111111111111"
OTHER_GUILD_ID = "222222222222222222"

# Release dates are unix seconds (UTC)
ELDEN_RING = {
    'id': 1001, 'name': 'Elden Ring', 'category': 0, 'rating': 94.2,
    'genres': [{'id': 12, 'name': 'Role-playing (RPG)'}],
    'game_modes': [{'id': 1, 'name': 'Single player'}, {'id': 2, 'name': 'Multiplayer'}],
    'platforms': [{'id': 6, 'name': 'PC (Microsoft Windows)'}, {'id': 167, 'name': 'PlayStation 5'}],
    'first_release_date': 1645747200,  # 2022-02-25
}
DOOM_ETERNAL = {
    'id': 1002, 'name': 'Doom Eternal', 'category': 0, 'rating': 88.0,
    'genres': [{'id': 5, 'name': 'Shooter'}],
    'game_modes': [{'id': 1, 'name': 'Single player'}, {'id': 2, 'name': 'Multiplayer'}],
    'platforms': [{'id': 6, 'name': 'PC (Microsoft Windows)'}],
    'first_release_date': 1584662400,  # 2020-03-20
}
BALDURS_GATE_3 = {
    'id': 1003, 'name': "Baldur's Gate 3", 'category': 0, 'rating': 96.1,
    'genres': [{'id': 12, 'name': 'Role-playing (RPG)'}, {'id': 31, 'name': 'Adventure'}],
    'game_modes': [{'id': 1, 'name': 'Single player'}, {'id': 2, 'name': 'Multiplayer'}],
    'platforms': [{'id': 6, 'name': 'PC (Microsoft Windows)'}, {'id': 167, 'name': 'PlayStation 5'}],
    'first_release_date': 1691020800,  # 2023-08-03
}
DISCO_ELYSIUM = {
    'id': 1004, 'name': 'Disco Elysium', 'category': 0,
    'genres': [{'id': 12, 'name': 'Role-playing (RPG)'}, {'id': 31, 'name': 'Adventure'}],
    'game_modes': [{'id': 1, 'name': 'Single player'}],
    'platforms': [{'id': 6, 'name': 'PC (Microsoft Windows)'}],
    'first_release_date': 1571097600,  # 2019-10-15
}

GENRES = [
    {'id': 12, 'name': 'Role-playing (RPG)', 'slug': 'role-playing-rpg'},
    {'id': 5, 'name': 'Shooter', 'slug': 'shooter'},
    {'id': 31, 'name': 'Adventure', 'slug': 'adventure'},
]
GAME_MODES = [
    {'id': 1, 'name': 'Single player', 'slug': 'single-player'},
    {'id': 2, 'name': 'Multiplayer', 'slug': 'multiplayer'},
]
PLATFORMS = [
    {'id': 6, 'name': 'PC (Microsoft Windows)', 'slug': 'win'},
    {'id': 167, 'name': 'PlayStation 5', 'slug': 'ps5'},
]
GAME_CATEGORIES = [
    {'id': 0, 'name': 'Main Game', 'slug': 'main-game'},
    {'id': 1, 'name': 'DLC', 'slug': 'dlc'},
    {'id': 2, 'name': 'Expansion', 'slug': 'expansion'},
]


class FakeIGDBClient:
    """In-memory stand-in for IGDBClient with call counting and an outage switch."""

    def __init__(self, games: Optional[List[Dict[str, Any]]] = None):
        self.games = {g['id']: g for g in (games or [])}
        self.genres = list(GENRES)
        self.game_modes = list(GAME_MODES)
        self.platforms = list(PLATFORMS)
        self.categories = list(GAME_CATEGORIES)
        self.down = False
        self.detail_calls = 0

    def _check(self, operation: str):
        if self.down:
            raise LookupFailure(operation, "catalog is down")

    async def get_game_by_id(self, game_id: int) -> Optional[Dict[str, Any]]:
        self.detail_calls += 1
        self._check("IGDB games query")
        return self.games.get(game_id)

    async def search_games(self, search_term: str, limit: int = 20) -> List[Dict[str, Any]]:
        self._check("IGDB games query")
        term = search_term.lower()
        return [g for g in self.games.values() if term in g['name'].lower()][:limit]

    async def get_games_by_category(self, category_id: int, limit: int = 50) -> List[Dict[str, Any]]:
        self._check("IGDB games query")
        rated = [g for g in self.games.values() if g.get('category') == category_id and g.get('rating')]
        return sorted(rated, key=lambda g: g['rating'], reverse=True)[:limit]

    async def get_categories(self) -> List[Dict[str, Any]]:
        self._check("IGDB game_categories query")
        return self.categories

    async def get_genres(self) -> List[Dict[str, Any]]:
        self._check("IGDB genres query")
        return self.genres

    async def get_game_modes(self) -> List[Dict[str, Any]]:
        self._check("IGDB game_modes query")
        return self.game_modes

    async def get_platforms(self) -> List[Dict[str, Any]]:
        self._check("IGDB platforms query")
        return self.platforms


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(f"sqlite:///{tmp_path / 'ladder_test.db'}")
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def igdb():
    return FakeIGDBClient([ELDEN_RING, DOOM_ETERNAL, BALDURS_GATE_3, DISCO_ELYSIUM])


@pytest.fixture
def catalog(igdb):
    return CatalogResolver(igdb)


@pytest.fixture
def ops(db, catalog):
    return LadderOperations(db, catalog)


@pytest.fixture
def ops_no_catalog(db):
    return LadderOperations(db)


async def nominate(ops, game, user_id, platform="discord", guild_id=GUILD_ID, category=None):
    """Submit one nomination vote for a catalog game dict."""
    return await ops.submit_nomination(guild_id, game['id'], game['name'], category, user_id, platform)


async def nominate_votes(ops, game_votes, guild_id=GUILD_ID):
    """Nominate games with the given vote counts, each vote from a distinct user."""
    for game_id, game_name, votes in game_votes:
        for n in range(votes):
            await ops.submit_nomination(guild_id, game_id, game_name, None, f"user-{game_id}-{n}", "discord")
