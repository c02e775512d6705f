"""Discord command surface for gacha sessions."""

from __future__ import annotations

import asyncio
import logging
import random
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import discord
from discord.ext import commands

from .catalog import ConfigCatalog
from .config import GachaConfig, load_gacha_config
from .errors import GachaError
from .history import HistorySummary
from .ledger import SqliteLedger, connect_wallet_db
from .models import PullBatch, RarityTier, ResultKind
from .session import GachaSession, UpgradePreview
from .state import SessionStore
from .utils import int_from_env, path_from_env

logger = logging.getLogger("gachaspire.commands")

SessionKey = Tuple[int, int]

MAX_PULLS_PER_COMMAND = 10
MAX_LISTED_RECORDS = 20


def is_admin(member: discord.abc.User) -> bool:
    if isinstance(member, discord.Member):
        if member.guild_permissions.administrator:
            return True
        roles: Iterable[discord.Role] = getattr(member, "roles", [])
        return any(role.name.lower() == "admin" for role in roles)
    return False


def format_batch(batch: PullBatch, catalog: ConfigCatalog) -> str:
    lines = [f"**Pulled {batch.total_pulls}** for {batch.gold_spent} gold (level {batch.level})"]
    for record in batch.records[:MAX_LISTED_RECORDS]:
        name = catalog.display_name(record.item_id)
        tags = []
        if record.kind in (ResultKind.GUARANTEED, ResultKind.CEILING):
            tags.append(record.kind.value)
        if record.pickup:
            tags.append("pickup")
        suffix = f" [{', '.join(tags)}]" if tags else ""
        lines.append(f"- {name} ({record.rarity.label}){suffix}")
    hidden = batch.total_pulls - MAX_LISTED_RECORDS
    if hidden > 0:
        lines.append(f"...and {hidden} more.")
    if batch.was_ceiling:
        lines.append("Ceiling reached!")
    elif batch.was_guaranteed:
        lines.append("Guarantee triggered.")
    if batch.empty_draws:
        lines.append(f"{batch.empty_draws} draw(s) found no characters of their rarity.")
    return "\n".join(lines)


def format_summary(summary: HistorySummary) -> str:
    lines = [
        "**Gacha statistics**",
        f"Total pulls: {summary.total_pulls}",
        f"Gold spent: {summary.total_gold_spent}",
        f"Average cost: {summary.average_cost_per_pull:.1f} gold/pull",
    ]
    for tier in RarityTier:
        count = summary.per_rarity_counts.get(tier, 0)
        lines.append(f"{tier.label}: {count} ({summary.actual_rate_percent(tier):.2f}%)")
    return "\n".join(lines)


def format_rates(rates: Mapping[RarityTier, float]) -> str:
    lines = ["**Current drop rates**"]
    for tier in sorted(rates, reverse=True):
        lines.append(f"{tier.label}: {rates[tier]:.2f}%")
    return "\n".join(lines)


def format_preview(preview: UpgradePreview) -> str:
    if preview.next_level == preview.current_level:
        return f"Gacha is at its max level ({preview.current_level})."
    return preview.summary()


class GachaCommands:
    """Owns per-player sessions, their wallets and persistence."""

    def __init__(
        self,
        *,
        bot: commands.Bot,
        config: GachaConfig,
        catalog: ConfigCatalog,
        db_path: Path,
        store_path: Path,
        channel_id: int = 0,
        starting_gold: int = 0,
    ) -> None:
        self.bot = bot
        self.config = config
        self.catalog = catalog
        self.channel_id = channel_id
        self.starting_gold = starting_gold
        self._conn = connect_wallet_db(db_path)
        self._db_lock = threading.Lock()
        self._store = SessionStore(store_path)
        self._sessions: Dict[SessionKey, GachaSession] = {}
        self._locks: Dict[SessionKey, asyncio.Lock] = {}
        self._rng = random.Random(config.rng_seed)

    @staticmethod
    def _store_key(key: SessionKey) -> str:
        return f"{key[0]}:{key[1]}"

    def _lock_for(self, key: SessionKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def session_for(self, guild_id: int, user_id: int) -> GachaSession:
        key = (guild_id, user_id)
        session = self._sessions.get(key)
        if session is not None:
            return session
        ledger = SqliteLedger(
            self._conn,
            guild_id,
            user_id,
            starting_balance=self.starting_gold,
            lock=self._db_lock,
        )
        state = self._store.load(
            self._store_key(key),
            guaranteed_floor=self.config.pity.guaranteed_floor,
            max_level=self.config.max_level,
        )
        session = GachaSession(
            self.config,
            ledger,
            self.catalog,
            rng=random.Random(self._rng.getrandbits(64)),
            state=state,
            session_id=self._store_key(key),
        )
        self._sessions[key] = session
        return session

    def _persist(self, key: SessionKey) -> None:
        session = self._sessions.get(key)
        if session is not None:
            self._store.save(self._store_key(key), session.state)

    @staticmethod
    def _key_for(ctx: commands.Context, user_id: Optional[int] = None) -> SessionKey:
        guild_id = ctx.guild.id if ctx.guild is not None else 0
        return (guild_id, user_id if user_id is not None else ctx.author.id)

    def _validate_channel(self, ctx: commands.Context) -> bool:
        if not self.channel_id:
            return True
        return getattr(ctx.channel, "id", None) == self.channel_id

    def _register_command(self, command: commands.Command) -> None:
        existing = self.bot.get_command(command.name)
        if existing:
            self.bot.remove_command(existing.name)
        self.bot.add_command(command)

    def register_commands(self) -> None:
        @commands.command(name="pull")
        async def gacha_pull(ctx: commands.Context, count: int = 1) -> None:
            await self.command_pull(ctx, count)

        @commands.command(name="upgrade")
        async def gacha_upgrade(ctx: commands.Context) -> None:
            await self.command_upgrade(ctx)

        @commands.command(name="gachastats")
        async def gacha_stats(ctx: commands.Context) -> None:
            await self.command_stats(ctx)

        @commands.command(name="gacharates")
        async def gacha_rates(ctx: commands.Context) -> None:
            await self.command_rates(ctx)

        @commands.command(name="gold")
        async def gacha_gold(ctx: commands.Context) -> None:
            await self.command_gold(ctx)

        @commands.command(name="givegold")
        async def gacha_givegold(
            ctx: commands.Context,
            member: Optional[discord.Member] = None,
            amount: Optional[int] = None,
        ) -> None:
            await self.command_give_gold(ctx, member, amount)

        @commands.command(name="gachareset")
        async def gacha_reset(ctx: commands.Context, member: Optional[discord.Member] = None) -> None:
            await self.command_reset(ctx, member)

        for command in (
            gacha_pull,
            gacha_upgrade,
            gacha_stats,
            gacha_rates,
            gacha_gold,
            gacha_givegold,
            gacha_reset,
        ):
            self._register_command(command)

    async def command_pull(self, ctx: commands.Context, count: int) -> None:
        if not self._validate_channel(ctx):
            return
        if count > MAX_PULLS_PER_COMMAND:
            await ctx.reply(f"You can pull at most {MAX_PULLS_PER_COMMAND} at once.", mention_author=False)
            return
        key = self._key_for(ctx)
        async with self._lock_for(key):
            session = self.session_for(*key)
            try:
                batch = session.pull(count)
            except GachaError as exc:
                await ctx.reply(str(exc), mention_author=False)
                return
            self._persist(key)
            balance = session.ledger.current_balance()
        await ctx.reply(f"{format_batch(batch, self.catalog)}\nGold left: {balance}", mention_author=False)

    async def command_upgrade(self, ctx: commands.Context) -> None:
        if not self._validate_channel(ctx):
            return
        key = self._key_for(ctx)
        async with self._lock_for(key):
            session = self.session_for(*key)
            preview = session.upgrade_preview()
            try:
                level = session.upgrade()
            except GachaError as exc:
                await ctx.reply(f"{exc}\n{format_preview(preview)}", mention_author=False)
                return
            self._persist(key)
        await ctx.reply(f"Gacha upgraded to level {level}.\n{format_preview(preview)}", mention_author=False)

    async def command_stats(self, ctx: commands.Context) -> None:
        key = self._key_for(ctx)
        async with self._lock_for(key):
            session = self.session_for(*key)
            summary = session.history_summary()
            level = session.current_level
            cost = session.current_cost()
            per_pull = session.simultaneous_pulls()
        header = f"Level {level} | Cost {cost} gold | {per_pull} draw(s) per pull"
        await ctx.reply(f"{header}\n{format_summary(summary)}", mention_author=False)

    async def command_rates(self, ctx: commands.Context) -> None:
        key = self._key_for(ctx)
        async with self._lock_for(key):
            rates = self.session_for(*key).current_rates()
        await ctx.reply(format_rates(rates), mention_author=False)

    async def command_gold(self, ctx: commands.Context) -> None:
        key = self._key_for(ctx)
        async with self._lock_for(key):
            balance = self.session_for(*key).ledger.current_balance()
        await ctx.reply(f"You have {balance} gold.", mention_author=False)

    async def command_give_gold(
        self,
        ctx: commands.Context,
        member: Optional[discord.Member],
        amount: Optional[int],
    ) -> None:
        if ctx.guild is None:
            await ctx.reply("Run this command inside the server.", mention_author=False)
            return
        if member is None:
            await ctx.reply("Usage: `!givegold @user amount`", mention_author=False)
            return
        if not is_admin(ctx.author):
            await ctx.reply("Only a server administrator can give gold manually.", mention_author=False)
            return
        if amount is None or amount <= 0:
            await ctx.reply("The gold amount must be a positive number.", mention_author=False)
            return
        key = self._key_for(ctx, member.id)
        async with self._lock_for(key):
            self.session_for(*key).ledger.credit(amount)
        logger.info("Admin %s granted %s gold to %s", ctx.author.id, amount, member.id)
        await ctx.reply(f"Granted {amount} gold to {member.mention}.", mention_author=False)

    async def command_reset(self, ctx: commands.Context, member: Optional[discord.Member]) -> None:
        if ctx.guild is None:
            await ctx.reply("This command can only be used inside the server.", mention_author=False)
            return
        if not is_admin(ctx.author):
            await ctx.reply("Only a server administrator can reset gacha progress.", mention_author=False)
            return
        target_id = member.id if member is not None else ctx.author.id
        key = self._key_for(ctx, target_id)
        async with self._lock_for(key):
            self.session_for(*key).reset()
            self._persist(key)
        await ctx.reply("Gacha progress reset to level 1 with an empty history.", mention_author=False)

    def session_keys(self) -> List[SessionKey]:
        return list(self._sessions)


def setup_gacha_commands(bot: commands.Bot) -> GachaCommands:
    """Factory used by bot.py to bootstrap the gacha commands."""
    config = load_gacha_config(path_from_env("GACHA_CONFIG_FILE") or Path("gacha_config.json"))
    catalog = ConfigCatalog.from_config(config.characters, pickup_ids=config.pickup.item_ids)
    manager = GachaCommands(
        bot=bot,
        config=config,
        catalog=catalog,
        db_path=path_from_env("GACHA_DB_PATH") or Path("gacha_wallets.sqlite3"),
        store_path=path_from_env("GACHA_STATE_FILE") or Path("gacha_state.json"),
        channel_id=int_from_env("GACHA_CHANNEL_ID", 0),
        starting_gold=int_from_env("GACHA_STARTING_GOLD", 1000),
    )
    manager.register_commands()
    logger.info(
        "Gacha '%s' ready: %s characters, max level %s",
        config.display_name,
        len(catalog),
        config.max_level,
    )
    return manager


__all__ = [
    "GachaCommands",
    "format_batch",
    "format_preview",
    "format_rates",
    "format_summary",
    "is_admin",
    "setup_gacha_commands",
]
