import logging
import os

import discord
from discord.ext import commands
from dotenv import load_dotenv

from gachaspire.commands import GachaCommands, setup_gacha_commands

load_dotenv()

logging.basicConfig(
    level=os.getenv("GACHA_LOG_LEVEL", "INFO"),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("gachaspire")
logging.getLogger("discord").setLevel(os.getenv("GACHA_DISCORD_LOG_LEVEL", "WARNING"))

DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")
if not DISCORD_TOKEN:
    raise RuntimeError("Missing DISCORD_TOKEN. Set it in your environment or .env file.")

intents = discord.Intents.default()
intents.message_content = True
intents.members = True


class GachaBot(commands.Bot):
    gacha: GachaCommands

    async def setup_hook(self) -> None:
        # ConfigError propagates here and stops startup.
        self.gacha = setup_gacha_commands(self)


bot = GachaBot(command_prefix=os.getenv("GACHA_PREFIX", "!"), intents=intents)


@bot.event
async def on_ready() -> None:
    logger.info("Logged in as %s (%s)", bot.user, getattr(bot.user, "id", "?"))


def main():
    bot.run(DISCORD_TOKEN, log_handler=None)


if __name__ == "__main__":
    main()
