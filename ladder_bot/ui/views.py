"""
Discord UI Views for the game ladder bot

Components:
- MatchupVoteView: vote buttons for up to ten open matchups of the current
  bracket round, two matchups per row
- build_vote_views: splits a round into as many views as it needs
"""

import discord
from typing import List

from ladder_bot.constants import UIConstants, VoteChannels
from ladder_bot.data_models.ladder import MatchupView
from ladder_bot.utils.error_embeds import ErrorEmbeds
from ladder_bot.utils.ladder_exceptions import LadderException
from ladder_bot.utils.logger import setup_logger

logger = setup_logger(__name__)

# Discord limits: five rows of five buttons per message
MAX_ROWS = 5
MAX_LABEL_LENGTH = 80

MATCHUPS_PER_ROW = 2
MATCHUPS_PER_VIEW = MAX_ROWS * MATCHUPS_PER_ROW


def parse_vote_custom_id(custom_id: str):
    """
    Parse ``matchup:<matchup_id>:<game_id>``.

    Returns (matchup_id, game_id), or None if the id is not a vote button.
    """
    parts = (custom_id or '').split(':')
    if len(parts) != 3 or parts[0] != 'matchup':
        return None
    try:
        return int(parts[1]), int(parts[2])
    except ValueError:
        return None


def votable_matchups(matchups: List[MatchupView]) -> List[MatchupView]:
    """Open matchups with two games; byes advance without votes"""
    return [m for m in matchups if not m.is_resolved and not m.is_bye]


def build_vote_views(operations, guild_id: str, matchups: List[MatchupView]) -> List["MatchupVoteView"]:
    """One view per group of MATCHUPS_PER_VIEW votable matchups, in slot order"""
    contested = sorted(votable_matchups(matchups), key=lambda m: m.slot)
    return [
        MatchupVoteView(operations, guild_id, contested[start:start + MATCHUPS_PER_VIEW])
        for start in range(0, len(contested), MATCHUPS_PER_VIEW)
    ]


class MatchupVoteView(discord.ui.View):
    """
    Vote buttons for open matchups of a bracket round.

    Each button is labelled with the matchup number so the pair sharing a
    row stays readable. Byes get no buttons.
    """

    TIMEOUT_SECONDS = 900

    def __init__(self, operations, guild_id: str, matchups: List[MatchupView]):
        super().__init__(timeout=self.TIMEOUT_SECONDS)
        self.operations = operations
        self.guild_id = guild_id
        self.logger = setup_logger(f"{__name__}.MatchupVoteView")

        contested = votable_matchups(matchups)
        if len(contested) > MATCHUPS_PER_VIEW:
            raise ValueError(f"A vote view holds at most {MATCHUPS_PER_VIEW} matchups, got {len(contested)}")

        self.shown_matchups = contested
        for index, matchup in enumerate(self.shown_matchups):
            row = index // MATCHUPS_PER_ROW
            number = matchup.slot + 1
            self._add_vote_button(matchup.id, matchup.game_a_id, f"{number}. {matchup.game_a_name}", discord.ButtonStyle.primary, row)
            self._add_vote_button(matchup.id, matchup.game_b_id, f"{number}. {matchup.game_b_name}", discord.ButtonStyle.secondary, row)

    def _add_vote_button(self, matchup_id: int, game_id: int, label: str, style, row: int):
        button = discord.ui.Button(
            label=label[:MAX_LABEL_LENGTH],
            style=style,
            custom_id=f"matchup:{matchup_id}:{game_id}",
            row=row
        )
        button.callback = self._vote_callback
        self.add_item(button)

    async def _vote_callback(self, interaction: discord.Interaction):
        """Record the clicked game as the user's vote in that matchup."""
        parsed = parse_vote_custom_id(interaction.data.get('custom_id'))
        if parsed is None:
            await interaction.response.send_message("❌ Invalid button.", ephemeral=True)
            return

        matchup_id, game_id = parsed
        try:
            await self.operations.cast_matchup_vote(
                self.guild_id, matchup_id, game_id, str(interaction.user.id), VoteChannels.DISCORD
            )
        except LadderException as e:
            await interaction.response.send_message(embed=ErrorEmbeds.ladder_error(e), ephemeral=True)
            return

        await interaction.response.send_message(f"✅ Vote recorded! {UIConstants.BALLOT_EMOJI}", ephemeral=True)

    async def on_timeout(self):
        """Handle view timeout."""
        self.logger.info(f"MatchupVoteView for guild {self.guild_id} timed out after {self.TIMEOUT_SECONDS} seconds")

    async def on_error(self, interaction: discord.Interaction, error: Exception, item):
        """Handle view interaction errors."""
        self.logger.error(f"MatchupVoteView error: {error}", exc_info=error)
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=ErrorEmbeds.command_error(), ephemeral=True)
            else:
                await interaction.response.send_message(embed=ErrorEmbeds.command_error(), ephemeral=True)
        except discord.HTTPException:
            self.logger.warning("Could not send error message to user")
