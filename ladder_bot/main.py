import asyncio
import logging
import traceback
from typing import Optional

import discord
from discord.ext import commands
from discord import app_commands

from ladder_bot.config import Config
from ladder_bot.database.database import Database
from ladder_bot.operations.ladder_operations import LadderOperations
from ladder_bot.services.catalog_resolver import CatalogResolver
from ladder_bot.services.igdb_client import IGDBClient
from ladder_bot.utils.error_embeds import ErrorEmbeds
from ladder_bot.utils.logger import setup_logger

class LadderBot(commands.Bot):
    def __init__(self):
        intents = discord.Intents.default()
        intents.guilds = True

        super().__init__(
            command_prefix=Config.COMMAND_PREFIX,
            intents=intents,
            help_command=None
        )

        # Attach app command error handler
        self.tree.on_error = self.on_app_command_error

        self.db: Optional[Database] = None
        self.igdb: Optional[IGDBClient] = None
        self.ladder_ops: Optional[LadderOperations] = None
        self.logger = setup_logger(__name__)

    async def setup_hook(self):
        """Called when the bot is starting up"""
        self.logger.info("Setting up Game Ladder Bot...")

        # Initialize database
        self.db = Database()
        await self.db.initialize()

        # Catalog is optional; without it constrained ladders and /vote are unavailable
        catalog = None
        if Config.igdb_configured():
            self.igdb = IGDBClient()
            catalog = CatalogResolver(self.igdb)
            self.logger.info("IGDB catalog configured")
        else:
            self.logger.warning("IGDB_CLIENT_ID/IGDB_CLIENT_SECRET not set; game catalog disabled")

        self.ladder_ops = LadderOperations(self.db, catalog)

        # Load cogs
        await self.load_cogs()

        # Sync slash commands
        await self._sync_commands()

        self.logger.info("Game Ladder Bot setup complete!")

    async def load_cogs(self):
        """Load all cogs"""
        cogs_to_load = [
            'ladder_bot.cogs.ladder',
        ]

        for cog in cogs_to_load:
            try:
                await self.load_extension(cog)
                self.logger.info(f"Loaded cog: {cog}")
            except Exception as e:
                self.logger.error(f"Failed to load cog {cog}: {e}", exc_info=True)

    async def _sync_commands(self):
        """Sync slash commands with Discord"""
        if not self.tree.get_commands():
            self.logger.warning("No application commands found to sync. Check for cog loading errors.")
            return

        try:
            guild_ids = Config.get_guild_ids()

            if guild_ids:
                # Guild-specific sync is instant
                self.logger.info(f"Syncing commands to {len(guild_ids)} guild(s): {guild_ids}...")

                for guild_id in guild_ids:
                    try:
                        guild = discord.Object(id=guild_id)
                        self.tree.copy_global_to(guild=guild)
                        synced = await self.tree.sync(guild=guild)
                        self.logger.info(f"Synced {len(synced)} command(s) to guild {guild_id}")
                    except discord.errors.Forbidden:
                        self.logger.error(f"Permission error syncing to guild {guild_id}. Ensure the bot has the 'applications.commands' scope.", exc_info=True)
                    except discord.errors.HTTPException as e:
                        self.logger.error(f"HTTP error syncing to guild {guild_id}. Status: {e.status}, Response: {e.text}", exc_info=True)
            else:
                # Global sync can take up to an hour to propagate
                self.logger.info("Syncing commands globally...")
                synced = await self.tree.sync()
                self.logger.info(f"Synced {len(synced)} command(s) globally")
        except Exception as e:
            self.logger.error(f"Failed to sync commands: {e}", exc_info=True)

    async def on_ready(self):
        """Called when the bot is ready"""
        self.logger.info(f'{self.user} has connected to Discord!')
        self.logger.info(f'Bot is in {len(self.guilds)} guilds')

        for guild in self.guilds:
            await self.ladder_ops.ensure_guild(str(guild.id), guild.name)

        await self.change_presence(
            activity=discord.Game(name="Game Ladder | /vote or /ladder show")
        )

    async def on_guild_join(self, guild: discord.Guild):
        self.logger.info(f"Joined guild {guild.id} ({guild.name})")
        await self.ladder_ops.ensure_guild(str(guild.id), guild.name)

    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        """Global error handler for slash commands"""
        command_name = interaction.command.qualified_name if interaction.command else 'Unknown'

        if isinstance(error, app_commands.CommandOnCooldown):
            error_embed = ErrorEmbeds.rate_limited(error.retry_after)
        elif isinstance(error, app_commands.CheckFailure):
            self.logger.info(f"Permission denied for command '{command_name}' by user {interaction.user}")
            error_embed = ErrorEmbeds.admin_only()
        else:
            self.logger.error(f"Error in app command '{command_name}': {error}", exc_info=True)
            error_embed = ErrorEmbeds.command_error()

        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=error_embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=error_embed, ephemeral=True)
        except discord.HTTPException as e:
            self.logger.error(f"Failed to send error response: {e}")

    async def close(self):
        """Cleanup when bot is shutting down"""
        self.logger.info("Shutting down Game Ladder Bot...")

        if self.igdb:
            await self.igdb.close()

        if self.db:
            await self.db.close()

        await super().close()

async def main():
    """Main entry point"""
    Config.validate()

    bot = LadderBot()

    try:
        await bot.start(Config.DISCORD_TOKEN)
    except KeyboardInterrupt:
        await bot.close()
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        traceback.print_exc()
    finally:
        await bot.close()

def run():
    """Console script entry point"""
    asyncio.run(main())

if __name__ == "__main__":
    run()
