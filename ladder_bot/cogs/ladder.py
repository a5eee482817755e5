"""
Ladder cog

Slash commands for nominating games and running the guild's bracket.
Every command is a thin caller of LadderOperations: it resolves the
guild, calls the engine, and renders the result or the error's
user-facing message.
"""

import discord
from discord.ext import commands
from discord import app_commands
from typing import Optional, Set

from ladder_bot.config import Config
from ladder_bot.constants import LadderConstants, UIConstants, VoteChannels
from ladder_bot.database.models import LadderPhase
from ladder_bot.services.catalog_resolver import CatalogCategory
from ladder_bot.ui.views import build_vote_views
from ladder_bot.utils.constraints import ConstraintInput
from ladder_bot.utils.embeds import (
    build_categories_embed, build_category_games_embed, build_filter_options_embed,
    build_history_embed, build_ladder_embed, build_nomination_embed,
    build_search_embed, build_stats_embed, build_top_embed,
)
from ladder_bot.utils.error_embeds import ErrorEmbeds
from ladder_bot.utils.ladder_exceptions import LadderException
from ladder_bot.utils.logger import setup_logger

logger = setup_logger(__name__)

SIZE_CHOICES = [app_commands.Choice(name=str(size), value=size) for size in LadderConstants.VALID_BRACKET_SIZES]
FILTER_CHOICES = [
    app_commands.Choice(name="genre", value=CatalogCategory.GENRE.name),
    app_commands.Choice(name="game mode", value=CatalogCategory.GAME_MODE.name),
    app_commands.Choice(name="platform", value=CatalogCategory.PLATFORM.name),
]


def is_ladder_admin(interaction: discord.Interaction) -> bool:
    """Server administrators and the bot owner may manage the ladder."""
    if interaction.user.id == Config.OWNER_DISCORD_ID:
        return True
    permissions = getattr(interaction.user, 'guild_permissions', None)
    return bool(permissions and permissions.administrator)


class LadderCog(commands.Cog):
    """Game nominations and bracket commands."""

    ladder = app_commands.Group(name="ladder", description="View or manage the seeded ladder for this server")

    def __init__(self, bot):
        self.bot = bot
        self.operations = bot.ladder_ops
        self._known_guilds: Set[str] = set()

    async def _guild_key(self, interaction: discord.Interaction) -> Optional[str]:
        """Guild id as stored, registering the guild's name the first time it is seen"""
        if not interaction.guild:
            return None
        guild_id = str(interaction.guild.id)
        if guild_id not in self._known_guilds:
            await self.operations.ensure_guild(guild_id, interaction.guild.name)
            self._known_guilds.add(guild_id)
        return guild_id

    async def _send_error(self, interaction: discord.Interaction, error: Exception):
        if isinstance(error, LadderException):
            embed = ErrorEmbeds.ladder_error(error)
        else:
            command = interaction.command.qualified_name if interaction.command else 'Unknown'
            logger.error(f"Unexpected error in /{command} for user {interaction.user.id}: {error}", exc_info=error)
            embed = ErrorEmbeds.command_error()
        await interaction.followup.send(embed=embed, ephemeral=True)

    async def _send_ladder(self, interaction: discord.Interaction, guild_id: str, state, content: Optional[str] = None):
        """Send the ladder embed, with vote buttons for every open matchup in the bracket phase"""
        embed = build_ladder_embed(state)
        views = []
        if state.phase == LadderPhase.BRACKET.value:
            views = build_vote_views(self.operations, guild_id, state.open_matchups)

        if not views:
            await interaction.followup.send(content=content, embed=embed)
            return

        await interaction.followup.send(content=content, embed=embed, view=views[0])
        for part, view in enumerate(views[1:], start=2):
            await interaction.followup.send(content=f"Round {state.current_round} voting ({part}/{len(views)})", view=view)

    # ============================================================================
    # Nominations
    # ============================================================================

    @app_commands.command(name="vote", description="Nominate a game for this server's ladder")
    @app_commands.describe(
        game="Name of the game to nominate",
        category="Category for this vote (e.g. Action, RPG, Strategy)"
    )
    @app_commands.checks.cooldown(rate=3, per=30.0, key=lambda i: i.user.id)
    async def vote(self, interaction: discord.Interaction, game: str, category: Optional[str] = None):
        """Nominate the best catalog match for ``game``."""
        await interaction.response.defer()

        try:
            guild_id = await self._guild_key(interaction)
            if guild_id is None:
                await interaction.followup.send(embed=ErrorEmbeds.guild_only(), ephemeral=True)
                return

            results = await self.operations.search_catalog(guild_id, game, limit=5)
            if not results:
                await interaction.followup.send(embed=ErrorEmbeds.game_not_found(game), ephemeral=True)
                return

            selected = results[0]
            stats = await self.operations.submit_nomination(
                guild_id,
                selected['id'],
                selected['name'],
                category,
                str(interaction.user.id),
                VoteChannels.DISCORD,
            )
            await interaction.followup.send(embed=build_nomination_embed(selected, category, stats))

        except Exception as e:
            await self._send_error(interaction, e)

    @app_commands.command(name="search", description="Search the game catalog")
    @app_commands.describe(query="Game name to search for")
    @app_commands.checks.cooldown(rate=3, per=30.0, key=lambda i: i.user.id)
    async def search(self, interaction: discord.Interaction, query: str):
        await interaction.response.defer()

        try:
            guild_id = await self._guild_key(interaction)
            if guild_id is None:
                await interaction.followup.send(embed=ErrorEmbeds.guild_only(), ephemeral=True)
                return

            results = await self.operations.search_catalog(guild_id, query, limit=UIConstants.DEFAULT_TOP_LIMIT)
            if not results:
                await interaction.followup.send(embed=ErrorEmbeds.game_not_found(query), ephemeral=True)
                return
            await interaction.followup.send(embed=build_search_embed(query, results))

        except Exception as e:
            await self._send_error(interaction, e)

    @app_commands.command(name="games", description="Browse the best rated games of a catalog category")
    @app_commands.describe(
        category="IGDB category ID (0=Main Game, 1=DLC, 2=Expansion, etc.); leave empty to list categories",
        limit="Number of games to show (default: 10)"
    )
    @app_commands.checks.cooldown(rate=3, per=30.0, key=lambda i: i.user.id)
    async def games(
        self,
        interaction: discord.Interaction,
        category: Optional[app_commands.Range[int, 0, 100]] = None,
        limit: Optional[app_commands.Range[int, 1, 50]] = None,
    ):
        await interaction.response.defer()

        try:
            if category is None:
                categories = await self.operations.list_game_categories()
                await interaction.followup.send(embed=build_categories_embed(categories))
                return

            # Works in DMs too; only guild use warms the guild's cache
            guild_id = await self._guild_key(interaction)
            games = await self.operations.browse_category(
                guild_id, category, limit or UIConstants.DEFAULT_TOP_LIMIT
            )
            if not games:
                await interaction.followup.send(f"❌ No games for category {category}", ephemeral=True)
                return
            await interaction.followup.send(embed=build_category_games_embed(category, games))

        except Exception as e:
            await self._send_error(interaction, e)

    @app_commands.command(name="top", description="View the top nominated games for this server")
    @app_commands.describe(limit="Number of games to show (default: 10, max: 100)")
    async def top(self, interaction: discord.Interaction, limit: Optional[app_commands.Range[int, 1, 100]] = None):
        await interaction.response.defer()

        try:
            guild_id = await self._guild_key(interaction)
            if guild_id is None:
                await interaction.followup.send(embed=ErrorEmbeds.guild_only(), ephemeral=True)
                return

            top_games = await self.operations.rank_nominations(guild_id, limit or UIConstants.DEFAULT_TOP_LIMIT)
            if not top_games:
                await interaction.followup.send("📊 No nominations yet. Use `/vote` to nominate a game!")
                return
            stats = await self.operations.get_nomination_stats(guild_id)
            await interaction.followup.send(embed=build_top_embed(top_games, stats))

        except Exception as e:
            await self._send_error(interaction, e)

    @app_commands.command(name="stats", description="View voting statistics for this server")
    async def stats(self, interaction: discord.Interaction):
        await interaction.response.defer()

        try:
            guild_id = await self._guild_key(interaction)
            if guild_id is None:
                await interaction.followup.send(embed=ErrorEmbeds.guild_only(), ephemeral=True)
                return

            stats = await self.operations.get_nomination_stats(guild_id)
            top_games = await self.operations.rank_nominations(guild_id, UIConstants.DEFAULT_TOP_LIMIT)
            await interaction.followup.send(embed=build_stats_embed(stats, top_games))

        except Exception as e:
            await self._send_error(interaction, e)

    # ============================================================================
    # /ladder
    # ============================================================================

    @ladder.command(name="show", description="Show the current ladder (nominations or bracket)")
    async def ladder_show(self, interaction: discord.Interaction):
        await interaction.response.defer()

        try:
            guild_id = await self._guild_key(interaction)
            if guild_id is None:
                await interaction.followup.send(embed=ErrorEmbeds.guild_only(), ephemeral=True)
                return

            state = await self.operations.get_ladder_state(guild_id)
            await self._send_ladder(interaction, guild_id, state)

        except Exception as e:
            await self._send_error(interaction, e)

    @ladder.command(name="history", description="Show past ladders and their champions")
    async def ladder_history(self, interaction: discord.Interaction):
        await interaction.response.defer()

        try:
            guild_id = await self._guild_key(interaction)
            if guild_id is None:
                await interaction.followup.send(embed=ErrorEmbeds.guild_only(), ephemeral=True)
                return

            summaries = await self.operations.list_ladders(guild_id)
            await interaction.followup.send(embed=build_history_embed(summaries))

        except Exception as e:
            await self._send_error(interaction, e)

    @ladder.command(name="votes", description="Show who nominated a game in the current ladder")
    @app_commands.describe(game_id="Catalog ID of the game (see /search)")
    async def ladder_votes(self, interaction: discord.Interaction, game_id: int):
        await interaction.response.defer(ephemeral=True)

        try:
            guild_id = await self._guild_key(interaction)
            if guild_id is None:
                await interaction.followup.send(embed=ErrorEmbeds.guild_only(), ephemeral=True)
                return

            votes, detail = await self.operations.get_votes_for_item(guild_id, game_id)
            name = (detail or {}).get('name', f"Game {game_id}")
            embed = discord.Embed(
                title=f"{UIConstants.BALLOT_EMOJI} Nominations for {name}",
                color=UIConstants.DEFAULT_EMBED_COLOR
            )
            if votes:
                embed.description = "\n".join(
                    f"<@{v.user_id}> via {v.platform}" + (f" ({v.category})" if v.category else "")
                    for v in votes[:50]
                )
            else:
                embed.description = "No nominations for this game yet."
            await interaction.followup.send(embed=embed, ephemeral=True)

        except Exception as e:
            await self._send_error(interaction, e)

    @ladder.command(name="filters", description="List the genre, game mode or platform names /ladder start accepts")
    @app_commands.describe(kind="Which filter to list")
    @app_commands.choices(kind=FILTER_CHOICES)
    async def ladder_filters(self, interaction: discord.Interaction, kind: app_commands.Choice[str]):
        await interaction.response.defer(ephemeral=True)

        try:
            category = CatalogCategory[kind.value]
            entries = await self.operations.list_filter_options(category)
            await interaction.followup.send(embed=build_filter_options_embed(category.value, entries), ephemeral=True)

        except Exception as e:
            await self._send_error(interaction, e)

    @ladder.command(name="start", description="Start a new ladder (admin)")
    @app_commands.describe(
        size="Bracket size (8, 16, or 32)",
        genre="Restrict to genre(s), comma-separated (e.g. RPG, Action)",
        year="Restrict to release year (e.g. 2023)",
        year_min="Earliest release year",
        year_max="Latest release year",
        game_mode="Restrict to game mode(s), comma-separated (e.g. Single player, Multiplayer)",
        platform="Restrict to platform(s), comma-separated (e.g. PlayStation 5, PC)"
    )
    @app_commands.choices(size=SIZE_CHOICES)
    @app_commands.check(is_ladder_admin)
    async def ladder_start(
        self,
        interaction: discord.Interaction,
        size: Optional[app_commands.Choice[int]] = None,
        genre: Optional[str] = None,
        year: Optional[int] = None,
        year_min: Optional[int] = None,
        year_max: Optional[int] = None,
        game_mode: Optional[str] = None,
        platform: Optional[str] = None,
    ):
        await interaction.response.defer()

        try:
            guild_id = await self._guild_key(interaction)
            if guild_id is None:
                await interaction.followup.send(embed=ErrorEmbeds.guild_only(), ephemeral=True)
                return

            constraint_input = ConstraintInput(
                genre_names=ConstraintInput.split_names(genre),
                game_mode_names=ConstraintInput.split_names(game_mode),
                platform_names=ConstraintInput.split_names(platform),
                release_year=year,
                release_year_min=year_min,
                release_year_max=year_max,
            )
            state = await self.operations.start_ladder(
                guild_id,
                size.value if size else LadderConstants.DEFAULT_BRACKET_SIZE,
                constraint_input,
            )

            if state.phase != LadderPhase.NOMINATIONS.value:
                message = f"ℹ️ A ladder is already running (phase: {state.phase}). Use `/ladder show`."
            else:
                restrictions = f" Restrictions: {state.constraints_display}." if state.constraints_display else ""
                message = (
                    f"✅ Ladder #{state.ladder_id} is open for nominations "
                    f"(bracket size: {state.bracket_size}).{restrictions} Nominate games with `/vote`!"
                )
            logger.info(f"/ladder start by {interaction.user.id} in guild {guild_id}: ladder {state.ladder_id}")
            await interaction.followup.send(message)

        except Exception as e:
            await self._send_error(interaction, e)

    @ladder.command(name="close-nominations", description="Close nominations and seed the bracket (admin)")
    @app_commands.describe(size="Override how many top games enter the bracket")
    @app_commands.check(is_ladder_admin)
    async def ladder_close_nominations(
        self, interaction: discord.Interaction, size: Optional[app_commands.Range[int, 2, 64]] = None
    ):
        await interaction.response.defer()

        try:
            guild_id = await self._guild_key(interaction)
            if guild_id is None:
                await interaction.followup.send(embed=ErrorEmbeds.guild_only(), ephemeral=True)
                return

            state = await self.operations.close_nominations(guild_id, size)
            await self._send_ladder(
                interaction, guild_id, state,
                content=f"✅ Nominations closed. Bracket seeded with {len(state.matchups or [])} matchups."
            )

        except Exception as e:
            await self._send_error(interaction, e)

    @ladder.command(name="close-round", description="Close the current bracket round (admin)")
    @app_commands.describe(round_number="Round to close, as shown by /ladder show (default: the current round)")
    @app_commands.rename(round_number="round")
    @app_commands.check(is_ladder_admin)
    async def ladder_close_round(
        self, interaction: discord.Interaction, round_number: Optional[app_commands.Range[int, 1, 10]] = None
    ):
        await interaction.response.defer()

        try:
            guild_id = await self._guild_key(interaction)
            if guild_id is None:
                await interaction.followup.send(embed=ErrorEmbeds.guild_only(), ephemeral=True)
                return

            # A repeated close of the same round fails with NoOpenMatchups
            if round_number is None:
                round_number = (await self.operations.get_ladder_state(guild_id)).current_round

            state = await self.operations.close_round(guild_id, round_number)
            if state.champion:
                await self._send_ladder(
                    interaction, guild_id, state,
                    content=f"{UIConstants.TROPHY_EMOJI} **Champion: {state.champion.game_name}**"
                )
                return

            next_round = [m for m in state.matchups or [] if m.round == state.current_round]
            await self._send_ladder(
                interaction, guild_id, state,
                content=f"✅ Round {round_number} closed. Round {state.current_round} has {len(next_round)} matchups."
            )

        except Exception as e:
            await self._send_error(interaction, e)

    @ladder.command(name="clear-nominations", description="Delete every nomination of the current ladder (admin)")
    @app_commands.check(is_ladder_admin)
    async def ladder_clear_nominations(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)

        try:
            guild_id = await self._guild_key(interaction)
            if guild_id is None:
                await interaction.followup.send(embed=ErrorEmbeds.guild_only(), ephemeral=True)
                return

            removed = await self.operations.clear_nominations(guild_id)
            await interaction.followup.send(f"🗑️ Cleared {removed} nomination votes.", ephemeral=True)

        except Exception as e:
            await self._send_error(interaction, e)


async def setup(bot):
    await bot.add_cog(LadderCog(bot))
