"""
Ladder Operations Module

Business logic for a guild's game ladder: nominations, bracket seeding,
matchup voting, round closing and state projection.

Lifecycle:
- nominations: members nominate games; constrained ladders only accept
  games whose catalog record passes the ladder's filter
- bracket: top nominations are seeded highest vs lowest; each round is
  closed by tallying votes, ties going to game A
- complete: the final matchup's winner is champion; the ladder is history

Concurrency:
- Every mutating operation holds the guild's asyncio.Lock and re-reads
  phase preconditions inside the transaction that performs its writes,
  so a second close of the same phase or round fails cleanly.
- Nominations release the lock while the catalog is consulted and take
  it again for the write.
- Catalog calls happen outside database transactions.
"""

import asyncio
import weakref
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from ladder_bot.constants import CatalogConstants, LadderConstants, VoteChannels
from ladder_bot.database.models import Ladder, LadderPhase, Matchup
from ladder_bot.data_models.ladder import (
    Champion, GuildInfo, LadderState, LadderSummary, MatchupView,
    NominationStats, NominationVoteRecord, RankedNomination,
    champion_from_matchups, pair_winners, project_ladder_state,
    resolve_winner, seed_bracket,
)
from ladder_bot.services.catalog_resolver import CatalogCategory
from ladder_bot.utils.constraints import (
    ConstraintInput, LadderConstraints, build_constraints_display, failed_clause,
)
from ladder_bot.utils.ladder_exceptions import (
    ConstraintViolation, InsufficientEntries, InvalidBracketSize, InvalidChoice,
    InvalidVoteChannel, LookupFailure, MatchupClosed, NoOpenMatchups, NotFound,
    WrongPhase,
)
from ladder_bot.utils.logger import setup_logger

logger = setup_logger(__name__)


class LadderOperations:
    """
    Business logic operations for guild ladders.

    The database handle and the catalog resolver are injected; the catalog
    is optional and, when absent, constrained nominations are rejected and
    cache warming is skipped.
    """

    def __init__(self, database, catalog=None):
        """Initialize with database instance and optional catalog resolver"""
        self.db = database
        self.catalog = catalog
        self.logger = logger
        # Entries disappear once no coroutine holds or awaits the lock
        self._guild_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _guild_lock(self, guild_id: str) -> asyncio.Lock:
        lock = self._guild_locks.get(guild_id)
        if lock is None:
            lock = asyncio.Lock()
            self._guild_locks[guild_id] = lock
        return lock

    @staticmethod
    def _validate_channel(platform: str) -> str:
        if platform not in VoteChannels.ALL:
            raise InvalidVoteChannel(platform)
        return platform

    async def _get_or_create_active_ladder(self, guild_id: str, session: AsyncSession) -> Ladder:
        """The guild's non-complete ladder, creating a nominations ladder if there is none"""
        await self.db.ensure_guild(guild_id, session=session)
        ladder = await self.db.get_active_ladder(guild_id, session=session)
        if ladder is not None:
            return ladder

        guild = await self.db.get_guild(guild_id, session=session)
        bracket_size = guild.bracket_size if guild else LadderConstants.DEFAULT_BRACKET_SIZE
        ladder = await self.db.create_ladder(guild_id, bracket_size, session=session)
        self.logger.info(f"Created ladder {ladder.id} for guild {guild_id} (bracket size {bracket_size})")
        return ladder

    # ============================================================================
    # Guilds
    # ============================================================================

    async def ensure_guild(self, guild_id: str, guild_name: Optional[str] = None) -> None:
        await self.db.ensure_guild(guild_id, guild_name)

    async def list_guilds(self) -> List[GuildInfo]:
        guilds = await self.db.list_guilds()
        return [
            GuildInfo(guild_id=g.guild_id, guild_name=g.guild_name, bracket_size=g.bracket_size)
            for g in guilds
        ]

    # ============================================================================
    # Game detail cache
    # ============================================================================

    async def _get_item_detail(self, guild_id: str, game_id: int, required: bool) -> Optional[Dict[str, Any]]:
        """
        Cached catalog record for a game, fetched and cached on a miss.

        When ``required`` is False a catalog outage is logged and treated
        as "no detail"; when True the ``LookupFailure`` propagates.
        """
        cached = await self.db.get_game_cache(guild_id, game_id)
        if cached:
            return cached
        if self.catalog is None:
            return None

        try:
            detail = await self.catalog.fetch_item_detail(game_id)
        except LookupFailure as e:
            if required:
                raise
            self.logger.warning(f"Could not fetch game data for {game_id} in guild {guild_id}: {e}")
            return None

        if detail:
            await self.db.set_game_cache(guild_id, game_id, detail)
        return detail

    async def search_catalog(
        self, guild_id: str, query: str, limit: int = CatalogConstants.DEFAULT_SEARCH_LIMIT
    ) -> List[Dict[str, Any]]:
        """Search the catalog and cache every returned game for the guild"""
        if self.catalog is None:
            raise LookupFailure("game search", "no game catalog is configured")

        results = await self.catalog.search_items(query, limit)
        await self._cache_games(guild_id, results)

        self.logger.debug(f"Catalog search {query!r} in guild {guild_id} returned {len(results)} games")
        return results

    async def browse_category(
        self, guild_id: Optional[str], category_id: int, limit: int = CatalogConstants.DEFAULT_CATEGORY_GAMES_LIMIT
    ) -> List[Dict[str, Any]]:
        """Best rated games of an IGDB game category, cached for the guild when there is one"""
        if self.catalog is None:
            raise LookupFailure("category browse", "no game catalog is configured")

        games = await self.catalog.items_in_category(category_id, limit)
        if guild_id is not None:
            await self._cache_games(guild_id, games)

        self.logger.debug(f"Category {category_id} in guild {guild_id} returned {len(games)} games")
        return games

    async def list_game_categories(self) -> List[Dict[str, Any]]:
        if self.catalog is None:
            raise LookupFailure("category list", "no game catalog is configured")
        return await self.catalog.list_game_categories()

    async def list_filter_options(self, category: CatalogCategory) -> List[Dict[str, Any]]:
        """Catalog names a ladder filter can use for genres, game modes or platforms"""
        if self.catalog is None:
            raise LookupFailure(f"{category.value} list", "no game catalog is configured")
        return await self.catalog.list_options(category)

    async def _cache_games(self, guild_id: str, games: Sequence[Dict[str, Any]]) -> None:
        async with self.db.transaction() as session:
            await self.db.ensure_guild(guild_id, session=session)
            for game in games:
                if game.get('id') is not None:
                    await self.db.set_game_cache(guild_id, game['id'], game, session=session)

    # ============================================================================
    # Nominations
    # ============================================================================

    async def submit_nomination(
        self,
        guild_id: str,
        game_id: int,
        game_name: str,
        category: Optional[str],
        user_id: str,
        platform: str,
    ) -> NominationStats:
        """
        Record a nomination vote for a game.

        One vote per (game, user, platform); voting again only updates the
        declared category.

        Raises:
            WrongPhase: the ladder is past nominations
            ConstraintViolation: the game fails the ladder's filter, or has
                no catalog record to check against
            LookupFailure: the catalog is down while a filter is active
        """
        self._validate_channel(platform)

        async with self._guild_lock(guild_id):
            async with self.db.transaction() as session:
                ladder = await self._get_or_create_active_ladder(guild_id, session)
                if ladder.phase != LadderPhase.NOMINATIONS:
                    raise WrongPhase(LadderPhase.NOMINATIONS.value, ladder.phase.value)
                ladder_id = ladder.id
                constraints = LadderConstraints.from_json(ladder.constraints)
                constraints_display = ladder.constraints_display

        # Guild lock is not held during catalog lookups
        if constraints:
            detail = await self._get_item_detail(guild_id, game_id, required=True)
            clause = failed_clause(detail, constraints) if detail else None
            if not detail or clause:
                self.logger.info(
                    f"Rejected nomination of game {game_id} in guild {guild_id} "
                    f"(clause: {clause or 'no catalog data'})"
                )
                raise ConstraintViolation(game_name, clause, constraints_display)
        else:
            await self._get_item_detail(guild_id, game_id, required=False)

        async with self._guild_lock(guild_id):
            async with self.db.transaction() as session:
                ladder = await self.db.get_active_ladder(guild_id, session=session)
                if ladder is None or ladder.id != ladder_id or ladder.phase != LadderPhase.NOMINATIONS:
                    actual = ladder.phase.value if ladder else LadderPhase.COMPLETE.value
                    raise WrongPhase(LadderPhase.NOMINATIONS.value, actual)

                await self.db.upsert_nomination_vote(
                    ladder_id=ladder_id,
                    guild_id=guild_id,
                    game_id=game_id,
                    game_name=game_name,
                    user_id=user_id,
                    platform=platform,
                    category=category,
                    session=session,
                )
                stats = NominationStats(
                    total_votes=await self.db.count_nomination_votes(ladder_id, session=session),
                    total_games=await self.db.count_nominated_games(ladder_id, session=session),
                )

        self.logger.debug(f"Nomination vote for game {game_id} by {user_id}/{platform} in guild {guild_id}")
        return stats

    async def rank_nominations(self, guild_id: str, limit: int) -> List[RankedNomination]:
        """Current ladder's nominations, most votes first, ties by game id"""
        ladder = await self.db.get_active_ladder(guild_id)
        if ladder is None:
            return []
        return await self.db.get_top_nominations(ladder.id, limit)

    async def get_nomination_stats(self, guild_id: str) -> NominationStats:
        ladder = await self.db.get_active_ladder(guild_id)
        if ladder is None:
            return NominationStats(total_votes=0, total_games=0)
        async with self.db.transaction() as session:
            return NominationStats(
                total_votes=await self.db.count_nomination_votes(ladder.id, session=session),
                total_games=await self.db.count_nominated_games(ladder.id, session=session),
            )

    async def get_votes_for_item(
        self, guild_id: str, game_id: int
    ) -> Tuple[List[NominationVoteRecord], Optional[Dict[str, Any]]]:
        """Who nominated a game in the current ladder, plus its cached catalog record"""
        ladder = await self.db.get_active_ladder(guild_id)
        votes = await self.db.get_nomination_votes_for_game(ladder.id, game_id) if ladder else []
        detail = await self.db.get_game_cache(guild_id, game_id)
        return votes, detail

    async def clear_nominations(self, guild_id: str) -> int:
        """Delete every nomination vote of the current ladder (admin)"""
        async with self._guild_lock(guild_id):
            async with self.db.transaction() as session:
                ladder = await self._get_or_create_active_ladder(guild_id, session)
                if ladder.phase != LadderPhase.NOMINATIONS:
                    raise WrongPhase(LadderPhase.NOMINATIONS.value, ladder.phase.value)
                removed = await self.db.delete_nomination_votes(ladder.id, session=session)

        self.logger.info(f"Cleared {removed} nomination votes for guild {guild_id}")
        return removed

    # ============================================================================
    # Ladder lifecycle
    # ============================================================================

    async def start_ladder(
        self,
        guild_id: str,
        bracket_size: int = LadderConstants.DEFAULT_BRACKET_SIZE,
        constraint_input: Optional[ConstraintInput] = None,
    ) -> LadderState:
        """
        Start a new ladder for the guild.

        Idempotent: if the guild already has an active ladder its current
        state is returned unchanged.

        Raises:
            InvalidBracketSize: size is not 8, 16 or 32
            UnknownFilterValue: a filter name matches nothing in the catalog
            LookupFailure: the catalog is needed but unavailable
        """
        async with self._guild_lock(guild_id):
            async with self.db.transaction() as session:
                await self.db.ensure_guild(guild_id, session=session)
                existing = await self.db.get_active_ladder(guild_id, session=session)

            if existing is not None:
                self.logger.info(f"Guild {guild_id} already has active ladder {existing.id}")
                return await self._project(guild_id, existing)

            if bracket_size not in LadderConstants.VALID_BRACKET_SIZES:
                raise InvalidBracketSize(bracket_size)

            constraints = await self._resolve_constraints(constraint_input)
            constraints_display = build_constraints_display(constraint_input) if constraints else None

            async with self.db.transaction() as session:
                guild = await self.db.get_guild(guild_id, session=session)
                await self.db.set_guild_bracket_size(guild, bracket_size, session=session)
                ladder = await self.db.create_ladder(
                    guild_id,
                    bracket_size,
                    constraints=constraints.to_json() if constraints else None,
                    constraints_display=constraints_display,
                    session=session,
                )

        self.logger.info(
            f"Started ladder {ladder.id} for guild {guild_id} "
            f"(bracket size {bracket_size}, restrictions: {constraints_display or 'none'})"
        )
        return await self._project(guild_id, ladder)

    async def _resolve_constraints(self, constraint_input: Optional[ConstraintInput]) -> Optional[LadderConstraints]:
        """Resolve filter names to catalog ids. None when there is no filter"""
        if not constraint_input or not constraint_input.has_any():
            return None

        needs_catalog = (
            constraint_input.genre_names
            or constraint_input.game_mode_names
            or constraint_input.platform_names
        )
        if needs_catalog and self.catalog is None:
            raise LookupFailure("constraint resolution", "no game catalog is configured")

        genre_ids: List[int] = []
        game_mode_ids: List[int] = []
        platform_ids: List[int] = []
        if constraint_input.genre_names:
            genre_ids = await self.catalog.resolve_names(CatalogCategory.GENRE, constraint_input.genre_names)
        if constraint_input.game_mode_names:
            game_mode_ids = await self.catalog.resolve_names(CatalogCategory.GAME_MODE, constraint_input.game_mode_names)
        if constraint_input.platform_names:
            platform_ids = await self.catalog.resolve_names(CatalogCategory.PLATFORM, constraint_input.platform_names)

        return LadderConstraints(
            genre_ids=genre_ids,
            game_mode_ids=game_mode_ids,
            platform_ids=platform_ids,
            release_year=constraint_input.release_year,
            release_year_min=constraint_input.release_year_min,
            release_year_max=constraint_input.release_year_max,
        )

    async def close_nominations(self, guild_id: str, bracket_size: Optional[int] = None) -> LadderState:
        """
        Close nominations and seed round 1 from the top nominations.

        Raises:
            WrongPhase: the ladder is not taking nominations
            InvalidBracketSize: override below 2
            InsufficientEntries: fewer than 2 distinct games nominated
        """
        async with self._guild_lock(guild_id):
            async with self.db.transaction() as session:
                ladder = await self._get_or_create_active_ladder(guild_id, session)
                if ladder.phase != LadderPhase.NOMINATIONS:
                    raise WrongPhase(LadderPhase.NOMINATIONS.value, ladder.phase.value)

                size = bracket_size if bracket_size is not None else ladder.bracket_size
                if size < LadderConstants.MIN_BRACKET_ENTRIES:
                    raise InvalidBracketSize(size, f"at least {LadderConstants.MIN_BRACKET_ENTRIES}")

                top = await self.db.get_top_nominations(ladder.id, size, session=session)
                if len(top) < LadderConstants.MIN_BRACKET_ENTRIES:
                    raise InsufficientEntries(len(top), LadderConstants.MIN_BRACKET_ENTRIES)

                pairings = seed_bracket(top)
                await self.db.create_matchups(guild_id, ladder.id, 1, pairings, session=session)
                ladder = await self.db.update_ladder_phase(ladder, LadderPhase.BRACKET, session=session)

        self.logger.info(
            f"Closed nominations for ladder {ladder.id} in guild {guild_id}: "
            f"{len(top)} games seeded into {len(pairings)} matchups"
        )
        return await self._project(guild_id, ladder)

    # ============================================================================
    # Bracket
    # ============================================================================

    async def cast_matchup_vote(
        self,
        guild_id: str,
        matchup_id: int,
        voted_game_id: int,
        user_id: str,
        platform: str,
    ) -> None:
        """
        Record a vote in an open matchup; voting again changes the choice.

        Raises:
            NotFound: no such matchup in this guild
            MatchupClosed: the matchup already has a winner
            InvalidChoice: the game is not in the matchup
        """
        self._validate_channel(platform)

        async with self._guild_lock(guild_id):
            async with self.db.transaction() as session:
                matchup = await self.db.get_matchup(guild_id, matchup_id, session=session)
                if matchup is None:
                    raise NotFound("Matchup", matchup_id)
                if matchup.is_resolved:
                    raise MatchupClosed(matchup_id)
                if voted_game_id != matchup.game_a_id and (
                    matchup.game_b_id is None or voted_game_id != matchup.game_b_id
                ):
                    raise InvalidChoice(matchup_id, voted_game_id)

                await self.db.upsert_matchup_vote(
                    guild_id, matchup_id, user_id, platform, voted_game_id, session=session
                )

        self.logger.debug(f"Matchup vote {matchup_id} -> {voted_game_id} by {user_id}/{platform} in guild {guild_id}")

    async def close_round(self, guild_id: str, round_number: Optional[int] = None) -> LadderState:
        """
        Resolve every open matchup of the current round and advance.

        A single-matchup round is the final: the ladder completes and its
        winner is champion. Otherwise winners are paired in slot order
        into the next round.

        ``round_number`` is the round the caller saw as current. When given,
        only that round is closed; a later round is left untouched.

        Raises:
            WrongPhase: the ladder is not in the bracket phase
            NoOpenMatchups: the current round has nothing left to close, or
                is not ``round_number``
        """
        async with self._guild_lock(guild_id):
            async with self.db.transaction() as session:
                ladder = await self._get_or_create_active_ladder(guild_id, session)
                if ladder.phase != LadderPhase.BRACKET:
                    raise WrongPhase(LadderPhase.BRACKET.value, ladder.phase.value)

                current_round = await self.db.get_max_round(ladder.id, session=session)
                if round_number is not None and round_number != current_round:
                    self.logger.info(
                        f"Round {round_number} of ladder {ladder.id} in guild {guild_id} "
                        f"is no longer open (current round {current_round})"
                    )
                    raise NoOpenMatchups()
                round_matchups = await self.db.get_matchups(ladder.id, current_round, session=session)
                open_matchups = [m for m in round_matchups if not m.is_resolved]
                if not open_matchups:
                    raise NoOpenMatchups()

                counts = await self.db.get_matchup_vote_counts([m.id for m in open_matchups], session=session)
                for matchup in open_matchups:
                    votes = counts.get(matchup.id, {})
                    votes_a = votes.get(matchup.game_a_id, 0)
                    votes_b = votes.get(matchup.game_b_id, 0) if matchup.game_b_id is not None else 0
                    winner = resolve_winner(matchup.game_a_id, matchup.game_b_id, votes_a, votes_b)
                    await self.db.set_matchup_winner(matchup, winner, session=session)
                    self.logger.debug(
                        f"Matchup {matchup.id} resolved: {votes_a}-{votes_b}, winner {winner}"
                    )

                resolved = self._matchup_views(round_matchups, {})
                if len(round_matchups) == 1:
                    ladder = await self.db.update_ladder_phase(ladder, LadderPhase.COMPLETE, session=session)
                    final = resolved[0]
                    self.logger.info(
                        f"Ladder {ladder.id} in guild {guild_id} complete: "
                        f"champion {final.winner_name} ({final.winner_game_id})"
                    )
                else:
                    pairings = pair_winners(resolved)
                    await self.db.create_matchups(
                        guild_id, ladder.id, current_round + 1, pairings, session=session
                    )
                    self.logger.info(
                        f"Closed round {current_round} of ladder {ladder.id} in guild {guild_id}; "
                        f"round {current_round + 1} has {len(pairings)} matchups"
                    )

        return await self._project(guild_id, ladder)

    # ============================================================================
    # State projection
    # ============================================================================

    async def get_ladder_state(self, guild_id: str, ladder_id: Optional[int] = None) -> LadderState:
        """
        Current ladder state, creating a nominations ladder if none exists.

        With ``ladder_id``, project that ladder instead (including completed
        ones); raises NotFound if it does not belong to the guild.
        """
        if ladder_id is not None:
            ladder = await self.db.get_ladder(guild_id, ladder_id)
            if ladder is None:
                raise NotFound("Ladder", ladder_id)
            return await self._project(guild_id, ladder)

        async with self._guild_lock(guild_id):
            async with self.db.transaction() as session:
                ladder = await self._get_or_create_active_ladder(guild_id, session)
        return await self._project(guild_id, ladder)

    async def list_ladders(self, guild_id: str) -> List[LadderSummary]:
        """Every ladder of the guild, newest first, with champions where decided"""
        summaries = []
        async with self.db.transaction() as session:
            for ladder in await self.db.list_ladders(guild_id, session=session):
                champion = None
                if ladder.phase != LadderPhase.NOMINATIONS:
                    champion = await self._champion_of(ladder, session)
                summaries.append(LadderSummary(
                    ladder_id=ladder.id,
                    phase=LadderPhase.COMPLETE.value if champion else ladder.phase.value,
                    bracket_size=ladder.bracket_size,
                    constraints_display=ladder.constraints_display,
                    created_at=ladder.created_at,
                    completed_at=ladder.completed_at,
                    champion=champion,
                ))
        return summaries

    @staticmethod
    def _matchup_views(matchups: Sequence[Matchup], counts: Dict[int, Dict[int, int]]) -> List[MatchupView]:
        views = []
        for m in matchups:
            votes = counts.get(m.id, {})
            views.append(MatchupView(
                id=m.id,
                round=m.round,
                slot=m.slot,
                game_a_id=m.game_a_id,
                game_a_name=m.game_a_name,
                game_b_id=m.game_b_id,
                game_b_name=m.game_b_name,
                winner_game_id=m.winner_game_id,
                votes_a=votes.get(m.game_a_id, 0),
                votes_b=votes.get(m.game_b_id, 0) if m.game_b_id is not None else 0,
            ))
        return views

    async def _champion_of(self, ladder: Ladder, session: AsyncSession) -> Optional[Champion]:
        matchups = await self.db.get_matchups(ladder.id, session=session)
        return champion_from_matchups(self._matchup_views(matchups, {}), ladder.id)

    async def _project(self, guild_id: str, ladder: Ladder) -> LadderState:
        async with self.db.transaction() as session:
            if ladder.phase == LadderPhase.NOMINATIONS:
                limit = ladder.bracket_size * LadderConstants.NOMINATION_DISPLAY_MULTIPLIER
                top_games = await self.db.get_top_nominations(ladder.id, limit, session=session)
                previous = await self.db.get_latest_completed_ladder(guild_id, session=session)
                previous_champion = await self._champion_of(previous, session) if previous else None
                return project_ladder_state(
                    guild_id, ladder, top_games=top_games, previous_champion=previous_champion
                )

            matchups = await self.db.get_matchups(ladder.id, session=session)
            counts = await self.db.get_matchup_vote_counts([m.id for m in matchups], session=session)
            return project_ladder_state(guild_id, ladder, matchups=self._matchup_views(matchups, counts))
