import json
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Sequence
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy import select, delete, func
from sqlalchemy.dialects import postgresql, sqlite
from contextlib import asynccontextmanager

from ladder_bot.config import Config
from ladder_bot.constants import LadderConstants
from ladder_bot.database.models import (
    Base, Guild, Ladder, LadderPhase, NominationVote, Matchup, MatchupVote, GameCache
)
from ladder_bot.data_models.ladder import (
    RankedNomination, Pairing, NominationVoteRecord
)
from ladder_bot.utils.logger import setup_logger


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what func.now() stores in SQLite"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Database:
    """
    Persistence for guilds, ladders, votes, matchups and the game cache.

    Every store method takes an optional ``session``. Callers that need
    several reads and writes to land atomically pass the session from
    ``transaction()``; otherwise each call runs in its own transaction.
    No business rules live here.
    """

    def __init__(self, database_url: Optional[str] = None):
        self.logger = setup_logger(__name__)
        self.database_url = database_url
        self.engine = None
        self.async_session = None

    async def initialize(self):
        """Initialize the database connection and create tables"""
        self.logger.info("Initializing database...")

        # Convert sqlite URL to async if needed
        database_url = self.database_url or Config.DATABASE_URL
        if database_url.startswith('sqlite:///'):
            database_url = database_url.replace('sqlite:///', 'sqlite+aiosqlite:///')

        self.engine = create_async_engine(
            database_url,
            echo=Config.DEBUG,
            future=True
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Create all tables
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        self.logger.info("Database initialized successfully")

    @asynccontextmanager
    async def transaction(self):
        """
        Create a transaction boundary for atomic operations.

        All operations within the context are committed together on success,
        or rolled back together on failure.

        Usage:
            async with db.transaction() as session:
                ladder = await db.get_active_ladder(guild_id, session=session)
                await db.create_matchups(..., session=session)
                # All operations commit together here

        The caller passes the yielded session to every participating call.
        Exceptions must propagate out of the context for rollback to occur.
        """
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    @asynccontextmanager
    async def _get_session_context(self, session: Optional[AsyncSession] = None):
        """
        Provides a session context. Uses the provided session if available,
        otherwise opens a transaction of its own.
        """
        if session:
            # If a session is provided, we do not manage its lifecycle
            yield session
        else:
            async with self.transaction() as new_session:
                yield new_session

    def _insert(self, model):
        """Dialect insert construct so upserts can use ON CONFLICT"""
        if self.engine.dialect.name == 'postgresql':
            return postgresql.insert(model)
        return sqlite.insert(model)

    async def close(self):
        """Close the database connection"""
        if self.engine:
            await self.engine.dispose()
            self.logger.info("Database connection closed")

    # Guild operations
    async def ensure_guild(self, guild_id: str, guild_name: Optional[str] = None,
                           session: Optional[AsyncSession] = None) -> None:
        """Insert the guild if missing; refresh its name when one is given"""
        async with self._get_session_context(session) as s:
            stmt = self._insert(Guild).values(
                guild_id=guild_id,
                guild_name=guild_name,
                bracket_size=LadderConstants.DEFAULT_BRACKET_SIZE
            )
            if guild_name:
                stmt = stmt.on_conflict_do_update(
                    index_elements=[Guild.guild_id],
                    set_={'guild_name': stmt.excluded.guild_name}
                )
            else:
                stmt = stmt.on_conflict_do_nothing(index_elements=[Guild.guild_id])
            await s.execute(stmt)

    async def get_guild(self, guild_id: str, session: Optional[AsyncSession] = None) -> Optional[Guild]:
        """Get a guild by its ID"""
        async with self._get_session_context(session) as s:
            result = await s.execute(select(Guild).where(Guild.guild_id == guild_id))
            return result.scalar_one_or_none()

    async def set_guild_bracket_size(self, guild: Guild, bracket_size: int,
                                     session: Optional[AsyncSession] = None) -> None:
        async with self._get_session_context(session) as s:
            guild = await s.merge(guild) if guild not in s else guild
            guild.bracket_size = bracket_size
            await s.flush()

    async def list_guilds(self, session: Optional[AsyncSession] = None) -> List[Guild]:
        """Get all guilds, newest first"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Guild).order_by(Guild.created_at.desc(), Guild.guild_id)
            )
            return list(result.scalars().all())

    # Ladder operations
    async def get_active_ladder(self, guild_id: str, session: Optional[AsyncSession] = None) -> Optional[Ladder]:
        """Most recent ladder of the guild that is not complete"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Ladder)
                .where(Ladder.guild_id == guild_id, Ladder.phase != LadderPhase.COMPLETE)
                .order_by(Ladder.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get_ladder(self, guild_id: str, ladder_id: int,
                         session: Optional[AsyncSession] = None) -> Optional[Ladder]:
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Ladder).where(Ladder.id == ladder_id, Ladder.guild_id == guild_id)
            )
            return result.scalar_one_or_none()

    async def get_latest_completed_ladder(self, guild_id: str,
                                          session: Optional[AsyncSession] = None) -> Optional[Ladder]:
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Ladder)
                .where(Ladder.guild_id == guild_id, Ladder.phase == LadderPhase.COMPLETE)
                .order_by(Ladder.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_ladders(self, guild_id: str, session: Optional[AsyncSession] = None) -> List[Ladder]:
        """Every ladder of the guild, newest first"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Ladder).where(Ladder.guild_id == guild_id).order_by(Ladder.id.desc())
            )
            return list(result.scalars().all())

    async def create_ladder(self, guild_id: str, bracket_size: int,
                            constraints: Optional[str] = None,
                            constraints_display: Optional[str] = None,
                            session: Optional[AsyncSession] = None) -> Ladder:
        """Create a new ladder in the nominations phase"""
        async with self._get_session_context(session) as s:
            ladder = Ladder(
                guild_id=guild_id,
                phase=LadderPhase.NOMINATIONS,
                bracket_size=bracket_size,
                constraints=constraints,
                constraints_display=constraints_display,
                created_at=utcnow(),
                nominations_closed_at=None,
                completed_at=None
            )
            s.add(ladder)
            await s.flush()
            return ladder

    async def update_ladder_phase(self, ladder: Ladder, phase: LadderPhase,
                                  session: Optional[AsyncSession] = None) -> Ladder:
        """Move a ladder to a new phase and stamp the transition time"""
        async with self._get_session_context(session) as s:
            ladder = await s.merge(ladder) if ladder not in s else ladder
            ladder.phase = phase
            if phase == LadderPhase.BRACKET:
                ladder.nominations_closed_at = utcnow()
            elif phase == LadderPhase.COMPLETE:
                ladder.completed_at = utcnow()
            await s.flush()
            return ladder

    # Nomination vote operations
    async def upsert_nomination_vote(self, ladder_id: int, guild_id: str, game_id: int, game_name: str,
                                     user_id: str, platform: str, category: Optional[str],
                                     session: Optional[AsyncSession] = None) -> None:
        """One vote per (ladder, game, user, platform); re-voting updates the category"""
        async with self._get_session_context(session) as s:
            stmt = self._insert(NominationVote).values(
                ladder_id=ladder_id,
                guild_id=guild_id,
                game_id=game_id,
                game_name=game_name,
                user_id=user_id,
                platform=platform,
                category=category,
                timestamp=utcnow()
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[
                    NominationVote.ladder_id, NominationVote.game_id,
                    NominationVote.user_id, NominationVote.platform
                ],
                set_={'category': stmt.excluded.category, 'timestamp': stmt.excluded.timestamp}
            )
            await s.execute(stmt)

    async def get_top_nominations(self, ladder_id: int, limit: int,
                                  session: Optional[AsyncSession] = None) -> List[RankedNomination]:
        """Games ranked by vote count, ties broken by game id"""
        async with self._get_session_context(session) as s:
            votes = func.count().label('votes')
            result = await s.execute(
                select(
                    NominationVote.game_id,
                    func.max(NominationVote.game_name).label('game_name'),
                    votes
                )
                .where(NominationVote.ladder_id == ladder_id)
                .group_by(NominationVote.game_id)
                .order_by(votes.desc(), NominationVote.game_id.asc())
                .limit(limit)
            )
            return [
                RankedNomination(game_id=row.game_id, game_name=row.game_name, votes=row.votes)
                for row in result.all()
            ]

    async def count_nomination_votes(self, ladder_id: int, session: Optional[AsyncSession] = None) -> int:
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(func.count()).select_from(NominationVote).where(NominationVote.ladder_id == ladder_id)
            )
            return result.scalar() or 0

    async def count_nominated_games(self, ladder_id: int, session: Optional[AsyncSession] = None) -> int:
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(func.count(func.distinct(NominationVote.game_id)))
                .where(NominationVote.ladder_id == ladder_id)
            )
            return result.scalar() or 0

    async def get_nomination_votes_for_game(self, ladder_id: int, game_id: int,
                                            session: Optional[AsyncSession] = None) -> List[NominationVoteRecord]:
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(NominationVote)
                .where(NominationVote.ladder_id == ladder_id, NominationVote.game_id == game_id)
                .order_by(NominationVote.timestamp, NominationVote.user_id)
            )
            return [
                NominationVoteRecord(
                    user_id=vote.user_id,
                    platform=vote.platform,
                    category=vote.category,
                    timestamp=vote.timestamp
                )
                for vote in result.scalars().all()
            ]

    async def delete_nomination_votes(self, ladder_id: int, session: Optional[AsyncSession] = None) -> int:
        """Remove every nomination vote of a ladder. Returns the number removed"""
        async with self._get_session_context(session) as s:
            result = await s.execute(
                delete(NominationVote).where(NominationVote.ladder_id == ladder_id)
            )
            return result.rowcount or 0

    # Matchup operations
    async def create_matchups(self, guild_id: str, ladder_id: int, round_number: int,
                              pairings: Sequence[Pairing],
                              session: Optional[AsyncSession] = None) -> List[Matchup]:
        """Create one round of matchups; slot follows the order of ``pairings``"""
        async with self._get_session_context(session) as s:
            now = utcnow()
            matchups = [
                Matchup(
                    guild_id=guild_id,
                    ladder_id=ladder_id,
                    round=round_number,
                    slot=slot,
                    game_a_id=pairing.game_a_id,
                    game_a_name=pairing.game_a_name,
                    game_b_id=pairing.game_b_id,
                    game_b_name=pairing.game_b_name,
                    winner_game_id=None,
                    created_at=now,
                    resolved_at=None
                )
                for slot, pairing in enumerate(pairings)
            ]
            s.add_all(matchups)
            await s.flush()
            return matchups

    async def get_matchup(self, guild_id: str, matchup_id: int,
                          session: Optional[AsyncSession] = None) -> Optional[Matchup]:
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(Matchup).where(Matchup.id == matchup_id, Matchup.guild_id == guild_id)
            )
            return result.scalar_one_or_none()

    async def get_matchups(self, ladder_id: int, round_number: Optional[int] = None,
                           session: Optional[AsyncSession] = None) -> List[Matchup]:
        """Matchups of a ladder ordered by round then slot"""
        async with self._get_session_context(session) as s:
            query = select(Matchup).where(Matchup.ladder_id == ladder_id)
            if round_number is not None:
                query = query.where(Matchup.round == round_number)
            result = await s.execute(query.order_by(Matchup.round, Matchup.slot))
            return list(result.scalars().all())

    async def get_max_round(self, ladder_id: int, session: Optional[AsyncSession] = None) -> int:
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(func.max(Matchup.round)).where(Matchup.ladder_id == ladder_id)
            )
            return result.scalar() or 0

    async def set_matchup_winner(self, matchup: Matchup, winner_game_id: int,
                                 session: Optional[AsyncSession] = None) -> Matchup:
        async with self._get_session_context(session) as s:
            matchup = await s.merge(matchup) if matchup not in s else matchup
            matchup.winner_game_id = winner_game_id
            matchup.resolved_at = utcnow()
            await s.flush()
            return matchup

    # Matchup vote operations
    async def upsert_matchup_vote(self, guild_id: str, matchup_id: int, user_id: str, platform: str,
                                  voted_game_id: int, session: Optional[AsyncSession] = None) -> None:
        """One vote per (matchup, user, platform); re-voting changes the choice"""
        async with self._get_session_context(session) as s:
            stmt = self._insert(MatchupVote).values(
                guild_id=guild_id,
                matchup_id=matchup_id,
                user_id=user_id,
                platform=platform,
                voted_game_id=voted_game_id,
                timestamp=utcnow()
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[MatchupVote.matchup_id, MatchupVote.user_id, MatchupVote.platform],
                set_={'voted_game_id': stmt.excluded.voted_game_id, 'timestamp': stmt.excluded.timestamp}
            )
            await s.execute(stmt)

    async def get_matchup_vote_counts(self, matchup_ids: Sequence[int],
                                      session: Optional[AsyncSession] = None) -> Dict[int, Dict[int, int]]:
        """Vote counts keyed by matchup id, then by voted game id"""
        if not matchup_ids:
            return {}
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(MatchupVote.matchup_id, MatchupVote.voted_game_id, func.count().label('votes'))
                .where(MatchupVote.matchup_id.in_(list(matchup_ids)))
                .group_by(MatchupVote.matchup_id, MatchupVote.voted_game_id)
            )
            counts: Dict[int, Dict[int, int]] = {}
            for row in result.all():
                counts.setdefault(row.matchup_id, {})[row.voted_game_id] = row.votes
            return counts

    # Game cache operations
    async def get_game_cache(self, guild_id: str, game_id: int,
                             session: Optional[AsyncSession] = None) -> Optional[Dict[str, Any]]:
        async with self._get_session_context(session) as s:
            result = await s.execute(
                select(GameCache.game_data).where(GameCache.guild_id == guild_id, GameCache.game_id == game_id)
            )
            raw = result.scalar_one_or_none()
            if not raw:
                return None
            try:
                return json.loads(raw)
            except json.JSONDecodeError:
                self.logger.warning(f"Invalid cached JSON for game {game_id} in guild {guild_id}, ignoring")
                return None

    async def set_game_cache(self, guild_id: str, game_id: int, game_data: Dict[str, Any],
                             session: Optional[AsyncSession] = None) -> None:
        async with self._get_session_context(session) as s:
            stmt = self._insert(GameCache).values(
                guild_id=guild_id,
                game_id=game_id,
                game_data=json.dumps(game_data),
                cached_at=utcnow()
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[GameCache.guild_id, GameCache.game_id],
                set_={'game_data': stmt.excluded.game_data, 'cached_at': stmt.excluded.cached_at}
            )
            await s.execute(stmt)
