from sqlalchemy import (
    Column, Integer, String, DateTime, Text,
    ForeignKey, Enum as SQLEnum, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func
from enum import Enum

from ladder_bot.constants import LadderConstants

Base = declarative_base()

class LadderPhase(Enum):
    NOMINATIONS = "nominations"
    BRACKET = "bracket"
    COMPLETE = "complete"

class Guild(Base):
    __tablename__ = 'guilds'

    guild_id = Column(String(32), primary_key=True)
    guild_name = Column(String(100), nullable=True)
    bracket_size = Column(Integer, nullable=False, default=LadderConstants.DEFAULT_BRACKET_SIZE)

    # Metadata
    created_at = Column(DateTime, default=func.now())

    # Relationships
    ladders = relationship("Ladder", back_populates="guild")

    def __repr__(self):
        return f"<Guild(guild_id='{self.guild_id}', name='{self.guild_name}', bracket_size={self.bracket_size})>"

class Ladder(Base):
    __tablename__ = 'ladders'

    id = Column(Integer, primary_key=True, autoincrement=True)
    guild_id = Column(String(32), ForeignKey('guilds.guild_id'), nullable=False, index=True)
    phase = Column(SQLEnum(LadderPhase), nullable=False, default=LadderPhase.NOMINATIONS)
    bracket_size = Column(Integer, nullable=False, default=LadderConstants.DEFAULT_BRACKET_SIZE)

    # Nomination filter: resolved ids as JSON, plus the text admins typed
    constraints = Column(Text, nullable=True)
    constraints_display = Column(Text, nullable=True)

    # Lifecycle timestamps
    created_at = Column(DateTime, default=func.now())
    nominations_closed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    guild = relationship("Guild", back_populates="ladders")
    matchups = relationship("Matchup", back_populates="ladder")

    def __repr__(self):
        return f"<Ladder(id={self.id}, guild_id='{self.guild_id}', phase='{self.phase.value}', size={self.bracket_size})>"

class NominationVote(Base):
    __tablename__ = 'nomination_votes'

    ladder_id = Column(Integer, ForeignKey('ladders.id'), primary_key=True)
    game_id = Column(Integer, primary_key=True)
    user_id = Column(String(64), primary_key=True)
    platform = Column(String(16), primary_key=True)

    guild_id = Column(String(32), ForeignKey('guilds.guild_id'), nullable=False, index=True)
    game_name = Column(String(200), nullable=False)
    category = Column(String(100), nullable=True)
    timestamp = Column(DateTime, default=func.now())

    __table_args__ = (
        CheckConstraint("platform IN ('web', 'discord')", name='ck_nomination_votes_platform'),
        Index('idx_nomination_votes_ladder_game', 'ladder_id', 'game_id'),
    )

    def __repr__(self):
        return f"<NominationVote(ladder_id={self.ladder_id}, game_id={self.game_id}, user_id='{self.user_id}', platform='{self.platform}')>"

class Matchup(Base):
    __tablename__ = 'bracket_matchups'

    id = Column(Integer, primary_key=True, autoincrement=True)
    guild_id = Column(String(32), ForeignKey('guilds.guild_id'), nullable=False)
    ladder_id = Column(Integer, ForeignKey('ladders.id'), nullable=False)
    round = Column(Integer, nullable=False)
    slot = Column(Integer, nullable=False)  # Position within the round, 0-based

    game_a_id = Column(Integer, nullable=False)
    game_a_name = Column(String(200), nullable=False)
    game_b_id = Column(Integer, nullable=True)  # NULL = bye
    game_b_name = Column(String(200), nullable=True)

    winner_game_id = Column(Integer, nullable=True)

    # Metadata
    created_at = Column(DateTime, default=func.now())
    resolved_at = Column(DateTime, nullable=True)

    # Relationships
    ladder = relationship("Ladder", back_populates="matchups")

    __table_args__ = (
        UniqueConstraint('ladder_id', 'round', 'slot'),
        CheckConstraint('round >= 1', name='ck_bracket_matchups_round'),
        Index('idx_matchups_guild_ladder', 'guild_id', 'ladder_id'),
    )

    @property
    def is_bye(self) -> bool:
        return self.game_b_id is None

    @property
    def is_resolved(self) -> bool:
        return self.winner_game_id is not None

    def __repr__(self):
        return f"<Matchup(id={self.id}, round={self.round}, a={self.game_a_id}, b={self.game_b_id}, winner={self.winner_game_id})>"

class MatchupVote(Base):
    __tablename__ = 'matchup_votes'

    matchup_id = Column(Integer, ForeignKey('bracket_matchups.id'), primary_key=True)
    user_id = Column(String(64), primary_key=True)
    platform = Column(String(16), primary_key=True)

    guild_id = Column(String(32), ForeignKey('guilds.guild_id'), nullable=False)
    voted_game_id = Column(Integer, nullable=False)
    timestamp = Column(DateTime, default=func.now())

    __table_args__ = (
        CheckConstraint("platform IN ('web', 'discord')", name='ck_matchup_votes_platform'),
    )

    def __repr__(self):
        return f"<MatchupVote(matchup_id={self.matchup_id}, user_id='{self.user_id}', voted={self.voted_game_id})>"

class GameCache(Base):
    """Last-fetched catalog record per guild and game"""
    __tablename__ = 'game_cache'

    guild_id = Column(String(32), ForeignKey('guilds.guild_id'), primary_key=True)
    game_id = Column(Integer, primary_key=True)
    game_data = Column(Text, nullable=True)  # JSON
    cached_at = Column(DateTime, default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<GameCache(guild_id='{self.guild_id}', game_id={self.game_id})>"
