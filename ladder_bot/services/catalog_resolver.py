"""
Catalog resolver.

Turns the genre, game mode and platform names admins type into IGDB ids,
fetches single games on demand, and lists what admins and members can
browse: filter values, game categories and the games in a category. The
ladder operations layer only talks to the catalog through this class.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ladder_bot.constants import CatalogConstants
from ladder_bot.utils.ladder_exceptions import LookupFailure, UnknownFilterValue
from ladder_bot.utils.logger import setup_logger

logger = setup_logger(__name__)


class CatalogCategory(Enum):
    GENRE = "genre"
    GAME_MODE = "game mode"
    PLATFORM = "platform"


def name_matches(entry: Dict[str, Any], name: str) -> bool:
    """Case-insensitive match on exact name, exact slug, or substring of either"""
    wanted = (name or '').strip().lower()
    if not wanted:
        return False
    entry_name = (entry.get('name') or '').lower()
    entry_slug = (entry.get('slug') or '').lower()
    return (
        entry_name == wanted
        or entry_slug == wanted
        or wanted in entry_name
        or wanted in entry_slug
    )


class CatalogResolver:
    """Name resolution and game lookups over an IGDB client."""

    def __init__(self, client):
        """
        Args:
            client: IGDBClient, or anything with the same coroutine methods
        """
        self.client = client
        self.logger = logger

    async def _list_category(self, category: CatalogCategory) -> List[Dict[str, Any]]:
        if category == CatalogCategory.GENRE:
            entries = await self.client.get_genres()
        elif category == CatalogCategory.GAME_MODE:
            entries = await self.client.get_game_modes()
        else:
            entries = await self.client.get_platforms()
        if not entries:
            raise LookupFailure(f"{category.value} list", "catalog returned no entries")
        return entries

    async def resolve_names(self, category: CatalogCategory, names: Sequence[str]) -> List[int]:
        """
        Resolve names to catalog ids, in input order, without duplicates.

        The first catalog entry that matches a name wins. Any name that
        matches nothing raises ``UnknownFilterValue``.
        """
        if not names:
            return []

        entries = await self._list_category(category)
        ids: List[int] = []
        for name in names:
            found = next((entry for entry in entries if name_matches(entry, name)), None)
            if found is None:
                raise UnknownFilterValue(category.value, name)
            if found['id'] not in ids:
                ids.append(found['id'])

        self.logger.debug(f"Resolved {category.value} names {list(names)} to ids {ids}")
        return ids

    async def list_options(self, category: CatalogCategory) -> List[Dict[str, Any]]:
        """Every catalog entry admins can name in a ladder filter, sorted by name"""
        entries = await self._list_category(category)
        return sorted(entries, key=lambda entry: (entry.get('name') or '').lower())

    async def list_game_categories(self) -> List[Dict[str, Any]]:
        """IGDB game categories (main game, DLC, expansion, ...)"""
        return await self.client.get_categories()

    async def items_in_category(
        self, category_id: int, limit: int = CatalogConstants.DEFAULT_CATEGORY_GAMES_LIMIT
    ) -> List[Dict[str, Any]]:
        return await self.client.get_games_by_category(category_id, limit)

    async def fetch_item_detail(self, item_id: int) -> Optional[Dict[str, Any]]:
        """Full catalog record for one game, or None if the catalog has no such game"""
        return await self.client.get_game_by_id(item_id)

    async def search_items(self, query: str, limit: int = CatalogConstants.DEFAULT_SEARCH_LIMIT) -> List[Dict[str, Any]]:
        return await self.client.search_games(query, limit)
