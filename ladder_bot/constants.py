"""
Bot-wide constants for the Game Ladder Discord Bot.

This module contains the magic numbers and display values used throughout
the codebase to improve maintainability and clarity.
"""

class LadderConstants:
    """Constants related to ladder lifecycle and bracket seeding."""

    # Bracket size for new guilds and implicitly created ladders
    DEFAULT_BRACKET_SIZE = 16

    # Sizes accepted when an admin starts a ladder
    VALID_BRACKET_SIZES = (8, 16, 32)

    # A bracket needs at least one real matchup
    MIN_BRACKET_ENTRIES = 2

    # Nominations view shows more games than will advance
    NOMINATION_DISPLAY_MULTIPLIER = 2

class VoteChannels:
    """Where a vote was cast from. A voter gets one vote per channel."""

    WEB = "web"
    DISCORD = "discord"
    ALL = (WEB, DISCORD)

class CatalogConstants:
    """Constants for IGDB catalog lookups."""

    TOKEN_URL = "https://id.twitch.tv/oauth2/token"
    API_BASE_URL = "https://api.igdb.com/v4"

    # Refresh the access token after 90% of its lifetime
    TOKEN_REFRESH_RATIO = 0.9

    GAME_FIELDS = (
        "id,name,summary,cover.url,rating,rating_count,"
        "genres.name,platforms.name,game_modes.name,first_release_date"
    )

    GENRE_LIMIT = 100
    GAME_MODE_LIMIT = 50
    PLATFORM_LIMIT = 500
    CATEGORY_LIMIT = 50
    DEFAULT_SEARCH_LIMIT = 20
    DEFAULT_CATEGORY_GAMES_LIMIT = 50

class UIConstants:
    """Constants for Discord UI elements."""

    # Embed colors
    DEFAULT_EMBED_COLOR = 0x3498db  # Blue
    CHAMPION_COLOR = 0xffd700       # Gold for completed ladders
    ERROR_COLOR = 0xe74c3c          # Red for errors
    SUCCESS_COLOR = 0x2ecc71        # Green for success

    # Emoji for UI elements
    TROPHY_EMOJI = "🏆"
    BALLOT_EMOJI = "🗳️"
    SWORDS_EMOJI = "⚔️"
    BYE_EMOJI = "⏭️"

    # Discord caps
    MAX_EMBED_FIELDS = 25

    # Default number of games listed by /top
    DEFAULT_TOP_LIMIT = 10
