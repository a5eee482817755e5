"""
Centralized error embeds for consistent error handling across the ladder bot.

Provides standardized error messages and formatting so every command and
button reports failures the same way.
"""

import discord

from ladder_bot.constants import UIConstants
from ladder_bot.utils.ladder_exceptions import LadderException, LookupFailure


class ErrorEmbeds:
    """Centralized error embed factory for consistent error handling."""

    @staticmethod
    def ladder_error(error: LadderException) -> discord.Embed:
        """Create embed from a ladder exception's user-facing message."""
        color = discord.Color.orange() if isinstance(error, LookupFailure) else UIConstants.ERROR_COLOR
        return discord.Embed(
            title="Ladder Error" if not isinstance(error, LookupFailure) else "Catalog Unavailable",
            description=error.user_message,
            color=color
        )

    @staticmethod
    def guild_only() -> discord.Embed:
        """Create embed for commands used outside a server."""
        return discord.Embed(
            title="Server Only",
            description="❌ This command must be used in a server (not DMs).",
            color=UIConstants.ERROR_COLOR
        )

    @staticmethod
    def admin_only() -> discord.Embed:
        """Create embed for ladder admin commands run by non-admins."""
        embed = discord.Embed(
            title="❌ Administrative Privileges Required",
            description="Only server administrators can manage the ladder.",
            color=UIConstants.ERROR_COLOR
        )
        embed.set_footer(text="Contact a server admin if you believe you should have access.")
        return embed

    @staticmethod
    def game_not_found(query: str) -> discord.Embed:
        """Create embed for a search that matched nothing."""
        return discord.Embed(
            title="No Games Found",
            description=f"❌ No games found matching \"{query}\". Try `/search` first.",
            color=discord.Color.orange()
        )

    @staticmethod
    def rate_limited(retry_after: float) -> discord.Embed:
        """Create embed for cooldown errors."""
        return discord.Embed(
            title="Rate Limited",
            description=f"⏰ You're on cooldown! Try again in {retry_after:.0f} seconds.",
            color=discord.Color.orange()
        )

    @staticmethod
    def command_error() -> discord.Embed:
        """Create embed for unexpected command errors."""
        return discord.Embed(
            title="Command Error",
            description="❌ An unexpected error occurred. Please try again later.",
            color=UIConstants.ERROR_COLOR
        )
