"""
IGDB catalog client.

Talks to the IGDB v4 API with Twitch client credentials. Every failure
(missing credentials, network error, timeout, non-2xx or malformed
response) is raised as ``LookupFailure`` so callers deal with one error
type.
"""

import time
from typing import Any, Dict, List, Optional

import httpx

from ladder_bot.config import Config
from ladder_bot.constants import CatalogConstants
from ladder_bot.utils.ladder_exceptions import LookupFailure
from ladder_bot.utils.logger import setup_logger

logger = setup_logger(__name__)


class IGDBClient:
    """Async IGDB client with cached OAuth token."""

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.client_id = client_id if client_id is not None else Config.IGDB_CLIENT_ID
        self.client_secret = client_secret if client_secret is not None else Config.IGDB_CLIENT_SECRET
        self._http_client = http_client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else Config.IGDB_TIMEOUT_SECONDS
        )
        self._access_token: Optional[str] = None
        self._token_expiry: float = 0.0

    async def close(self) -> None:
        await self._http_client.aclose()

    async def __aenter__(self) -> "IGDBClient":
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:
        await self.close()

    async def _get_access_token(self) -> str:
        """Return the cached token, fetching a new one when it is close to expiry"""
        if self._access_token and time.monotonic() < self._token_expiry:
            return self._access_token

        if not (self.client_id and self.client_secret):
            raise LookupFailure("authentication", "IGDB credentials are not configured")

        try:
            response = await self._http_client.post(
                CatalogConstants.TOKEN_URL,
                params={
                    'client_id': self.client_id,
                    'client_secret': self.client_secret,
                    'grant_type': 'client_credentials',
                },
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error getting IGDB access token: {e}")
            raise LookupFailure("authentication", str(e)) from e

        if not isinstance(payload, dict) or not payload.get('access_token'):
            logger.error("IGDB token response did not contain an access token")
            raise LookupFailure("authentication", "token response did not contain an access token")

        self._access_token = payload['access_token']
        lifetime = float(payload.get('expires_in', 0))
        self._token_expiry = time.monotonic() + lifetime * CatalogConstants.TOKEN_REFRESH_RATIO
        logger.debug(f"Obtained IGDB token valid for {lifetime:.0f}s")
        return self._access_token

    async def query(self, endpoint: str, body: str) -> List[Dict[str, Any]]:
        """POST an Apicalypse query to an IGDB endpoint"""
        token = await self._get_access_token()
        try:
            response = await self._http_client.post(
                f"{CatalogConstants.API_BASE_URL}/{endpoint}",
                content=body,
                headers={
                    'Client-ID': self.client_id,
                    'Authorization': f'Bearer {token}',
                    'Content-Type': 'text/plain',
                },
            )
            response.raise_for_status()
            results = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error querying IGDB {endpoint}: {e}")
            raise LookupFailure(f"IGDB {endpoint} query", str(e)) from e

        if not isinstance(results, list):
            raise LookupFailure(f"IGDB {endpoint} query", "unexpected response shape")
        return results

    async def get_game_by_id(self, game_id: int) -> Optional[Dict[str, Any]]:
        results = await self.query(
            'games',
            f"fields {CatalogConstants.GAME_FIELDS}; where id = {int(game_id)};"
        )
        return results[0] if results else None

    async def search_games(self, search_term: str, limit: int = CatalogConstants.DEFAULT_SEARCH_LIMIT) -> List[Dict[str, Any]]:
        escaped = search_term.replace('\\', '\\\\').replace('"', '\\"')
        return await self.query(
            'games',
            f'search "{escaped}"; fields {CatalogConstants.GAME_FIELDS}; limit {int(limit)};'
        )

    async def get_games_by_category(self, category_id: int, limit: int = CatalogConstants.DEFAULT_CATEGORY_GAMES_LIMIT) -> List[Dict[str, Any]]:
        """Rated games of one IGDB game category, best rated first"""
        return await self.query(
            'games',
            f"fields {CatalogConstants.GAME_FIELDS}; "
            f"where category = {int(category_id)} & rating > 0; sort rating desc; limit {int(limit)};"
        )

    async def get_categories(self) -> List[Dict[str, Any]]:
        return await self.query('game_categories', f"fields id,name,slug; limit {CatalogConstants.CATEGORY_LIMIT};")

    async def get_genres(self) -> List[Dict[str, Any]]:
        return await self.query('genres', f"fields id,name,slug; limit {CatalogConstants.GENRE_LIMIT};")

    async def get_game_modes(self) -> List[Dict[str, Any]]:
        return await self.query('game_modes', f"fields id,name,slug; limit {CatalogConstants.GAME_MODE_LIMIT};")

    async def get_platforms(self) -> List[Dict[str, Any]]:
        return await self.query('platforms', f"fields id,name,slug; limit {CatalogConstants.PLATFORM_LIMIT};")
