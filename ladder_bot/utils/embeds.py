"""
Shared embed utilities for the game ladder bot.

Provides reusable embed building functions so the ladder cog and the
matchup vote view render ladder state the same way.
"""

import discord
from typing import Any, Dict, List, Optional

from ladder_bot.constants import UIConstants
from ladder_bot.data_models.ladder import (
    LadderState, LadderSummary, MatchupView, NominationStats, RankedNomination
)
from ladder_bot.database.models import LadderPhase


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _cover_url(game: Dict[str, Any]) -> Optional[str]:
    url = (game.get('cover') or {}).get('url')
    if not url:
        return None
    return f"https:{url}" if url.startswith('//') else url


def format_matchup(matchup: MatchupView) -> str:
    """One matchup as a single line with its running tally"""
    if matchup.is_bye:
        return f"{UIConstants.BYE_EMOJI} **{matchup.game_a_name}** advances (bye)"
    line = (
        f"**{matchup.game_a_name}** ({matchup.votes_a}) vs "
        f"**{matchup.game_b_name}** ({matchup.votes_b})"
    )
    if matchup.is_resolved:
        line += f" → {matchup.winner_name}"
    return line


def build_nominations_embed(state: LadderState) -> discord.Embed:
    """
    Nominations phase: ranked games with the cut line at the bracket size.

    Games past the bracket size are still listed (the state carries twice
    as many) but marked as below the cut.
    """
    embed = discord.Embed(
        title=f"{UIConstants.BALLOT_EMOJI} Ladder: Nominations",
        color=UIConstants.DEFAULT_EMBED_COLOR,
        timestamp=discord.utils.utcnow()
    )

    top_games = state.top_games or []
    if top_games:
        lines = []
        for i, game in enumerate(top_games):
            line = f"{i + 1}. **{game.game_name}** ({_plural(game.votes, 'vote')})"
            if i == state.bracket_size:
                lines.append("── below the cut ──")
            lines.append(line)
        embed.description = "\n".join(lines)[:4000]
    else:
        embed.description = "No nominations yet. Use `/vote` to nominate!"

    if state.constraints_display:
        embed.add_field(name="Restrictions", value=state.constraints_display, inline=False)

    if state.previous_champion:
        embed.add_field(
            name=f"{UIConstants.TROPHY_EMOJI} Previous Champion",
            value=state.previous_champion.game_name,
            inline=False
        )

    embed.set_footer(
        text=f"Top {state.bracket_size} will advance to the bracket. Admin: /ladder close-nominations"
    )
    return embed


def build_bracket_embed(state: LadderState) -> discord.Embed:
    """Bracket phase: the current round's matchups, open ones first"""
    current = [m for m in state.matchups or [] if m.round == state.current_round]
    embed = discord.Embed(
        title=f"{UIConstants.SWORDS_EMOJI} Bracket – Round {state.current_round}",
        color=UIConstants.DEFAULT_EMBED_COLOR,
        timestamp=discord.utils.utcnow()
    )

    ordered = sorted(current, key=lambda m: (m.is_resolved, m.slot))
    for matchup in ordered[:UIConstants.MAX_EMBED_FIELDS]:
        embed.add_field(
            name=f"Matchup {matchup.slot + 1}",
            value=format_matchup(matchup),
            inline=False
        )

    if len(ordered) > UIConstants.MAX_EMBED_FIELDS:
        embed.set_footer(text=f"Showing {UIConstants.MAX_EMBED_FIELDS} of {len(ordered)} matchups.")
    elif state.open_matchups:
        embed.set_footer(text="Click a button to vote for that game.")
    else:
        embed.set_footer(text=f"All matchups decided. Admin: /ladder close-round round:{state.current_round}")

    if state.constraints_display:
        embed.description = f"Restrictions: {state.constraints_display}"
    return embed


def build_champion_embed(state: LadderState) -> discord.Embed:
    embed = discord.Embed(
        title=f"{UIConstants.TROPHY_EMOJI} Champion: {state.champion.game_name}",
        description=f"Ladder #{state.ladder_id} is complete.",
        color=UIConstants.CHAMPION_COLOR,
        timestamp=discord.utils.utcnow()
    )
    if state.matchups:
        final = [m for m in state.matchups if m.round == state.current_round]
        if final:
            embed.add_field(name="Final", value=format_matchup(final[0]), inline=False)
    embed.set_footer(text="Admin: /ladder start to begin a new ladder")
    return embed


def build_ladder_embed(state: LadderState) -> discord.Embed:
    """Render whichever phase the ladder is in"""
    if state.phase == LadderPhase.NOMINATIONS.value:
        return build_nominations_embed(state)
    if state.phase == LadderPhase.COMPLETE.value and state.champion:
        return build_champion_embed(state)
    return build_bracket_embed(state)


def build_top_embed(top_games: List[RankedNomination], stats: NominationStats) -> discord.Embed:
    embed = discord.Embed(
        title=f"{UIConstants.TROPHY_EMOJI} Top {len(top_games)} Nominations",
        description="\n".join(
            f"{i + 1}. **{g.game_name}** – {_plural(g.votes, 'vote')}"
            for i, g in enumerate(top_games)
        ),
        color=UIConstants.CHAMPION_COLOR,
        timestamp=discord.utils.utcnow()
    )
    embed.add_field(name="Total Votes", value=str(stats.total_votes), inline=True)
    embed.add_field(name="Total Games", value=str(stats.total_games), inline=True)
    return embed


def build_stats_embed(stats: NominationStats, top_games: List[RankedNomination]) -> discord.Embed:
    embed = discord.Embed(
        title="📊 Server Voting Statistics",
        color=UIConstants.DEFAULT_EMBED_COLOR,
        timestamp=discord.utils.utcnow()
    )
    embed.add_field(name="Total Votes", value=str(stats.total_votes), inline=True)
    embed.add_field(name="Total Games", value=str(stats.total_games), inline=True)
    embed.add_field(
        name=f"Top {UIConstants.DEFAULT_TOP_LIMIT}",
        value="\n".join(
            f"{i + 1}. {g.game_name} ({g.votes})" for i, g in enumerate(top_games)
        ) or "No votes yet",
        inline=False
    )
    return embed


def build_nomination_embed(game: Dict[str, Any], category: Optional[str], stats: NominationStats) -> discord.Embed:
    """Confirmation shown after a successful /vote"""
    description = f"You nominated **{game['name']}**"
    if category:
        description += f" in **{category}**"
    embed = discord.Embed(
        title="✅ Nomination Recorded!",
        description=description,
        color=UIConstants.SUCCESS_COLOR,
        timestamp=discord.utils.utcnow()
    )
    embed.add_field(name="Total Votes", value=str(stats.total_votes), inline=True)
    embed.add_field(name="Total Games", value=str(stats.total_games), inline=True)
    cover = _cover_url(game)
    if cover:
        embed.set_thumbnail(url=cover)
    return embed


def build_search_embed(query: str, games: List[Dict[str, Any]]) -> discord.Embed:
    embed = discord.Embed(
        title=f"🔍 Search: \"{query}\"",
        description="\n".join(
            f"{i + 1}. **{g.get('name', 'Unknown')}** (ID: {g.get('id')})"
            for i, g in enumerate(games[:UIConstants.DEFAULT_TOP_LIMIT])
        ),
        color=UIConstants.DEFAULT_EMBED_COLOR
    )
    embed.set_footer(text="Use /vote in a server to nominate")
    return embed


def build_history_embed(summaries: List[LadderSummary]) -> discord.Embed:
    embed = discord.Embed(
        title="📜 Ladder History",
        color=UIConstants.DEFAULT_EMBED_COLOR
    )
    if not summaries:
        embed.description = "No ladders yet. Admin: use `/ladder start` to begin."
        return embed

    for summary in summaries[:UIConstants.MAX_EMBED_FIELDS]:
        if summary.champion:
            value = f"{UIConstants.TROPHY_EMOJI} {summary.champion.game_name}"
        else:
            value = f"In progress ({summary.phase})"
        if summary.constraints_display:
            value += f"\n{summary.constraints_display}"
        started = summary.created_at.strftime('%Y-%m-%d') if summary.created_at else 'unknown'
        embed.add_field(
            name=f"Ladder #{summary.ladder_id} · {summary.bracket_size} games · {started}",
            value=value,
            inline=False
        )
    return embed


def build_category_games_embed(category_id: int, games: List[Dict[str, Any]]) -> discord.Embed:
    """Best rated games of one IGDB game category"""
    lines = []
    for i, game in enumerate(games[:UIConstants.DEFAULT_TOP_LIMIT]):
        line = f"{i + 1}. **{game.get('name', 'Unknown')}** (ID: {game.get('id')})"
        if game.get('rating'):
            line += f" ⭐ {game['rating']:.1f}"
        lines.append(line)
    embed = discord.Embed(
        title=f"🎮 Games (Category {category_id})",
        description="\n".join(lines),
        color=UIConstants.SUCCESS_COLOR
    )
    embed.set_footer(text="Use /vote in a server to nominate")
    return embed


def build_categories_embed(categories: List[Dict[str, Any]]) -> discord.Embed:
    embed = discord.Embed(
        title="🎮 Game Categories",
        description="\n".join(
            f"`{c.get('id')}` {c.get('name', 'Unknown')}"
            for c in sorted(categories, key=lambda c: c.get('id', 0))
        )[:4000] or "No categories available.",
        color=UIConstants.DEFAULT_EMBED_COLOR
    )
    embed.set_footer(text="Use /games category:<id> to browse a category")
    return embed


def build_filter_options_embed(label: str, entries: List[Dict[str, Any]]) -> discord.Embed:
    """Names an admin can pass to /ladder start for one filter"""
    names = ", ".join(e['name'] for e in entries if e.get('name'))
    if len(names) > 4000:
        names = names[:3997] + "..."
    embed = discord.Embed(
        title=f"Valid {label} names ({len(entries)})",
        description=names or "None available.",
        color=UIConstants.DEFAULT_EMBED_COLOR
    )
    embed.set_footer(text="Partial names work too, e.g. \"RPG\" or \"PS5\"")
    return embed
