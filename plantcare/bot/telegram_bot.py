"""
PlantCare — Telegram Bot.

Telegram is the user interface: listing plants and spaces, the care
walkthrough, backups, AI-assisted plant creation and photo identification
all flow through this bot.

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import logging
from datetime import datetime
from datetime import time as dt_time
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)
from telegram.helpers import escape_markdown

from plantcare.config import settings
from plantcare.core import care_schedule
from plantcare.core.backup import BackupError
from plantcare.core.llm import LLMError
from plantcare.core.sorting import PlantsSortOption, SpacesSortOption, sort_plants, sort_spaces
from plantcare.data.models import Room

if TYPE_CHECKING:
    from telegram import User

    from plantcare.app_context import AppContext

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def _is_authorized(user: User | None) -> bool:
    return user is not None and user.id in settings.ALLOWED_USER_IDS


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores updates from unauthorized users.

    Does NOT send any response to strangers — the bot must not reveal
    its existence to unauthorized users.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if not _is_authorized(user):
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return  # Silent ignore
        return await func(update, context)

    return wrapper


def _ctx(context: ContextTypes.DEFAULT_TYPE) -> AppContext:
    return context.bot_data["ctx"]


def _md(text: str) -> str:
    return escape_markdown(text, version=1)


# ---------------------------------------------------------------------------
# Basic commands
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    await update.message.reply_text(
        "Welcome to *PlantCare*!\n\n"
        "I keep track of your plants and when they need care:\n"
        "• /due shows what needs attention today\n"
        "• /care walks you through today's care routine\n"
        "• /addplant <name> sets up a new plant with AI care advice\n"
        "• Send me a photo and I'll try to identify the plant\n\n"
        "Type /help for the full command list.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "*Available commands:*\n"
        "/plants [az|za|next|last|space|space-za] — List plants\n"
        "/spaces [az|za|most|fewest] — List rooms and zones\n"
        "/due — Overdue and due-today care steps\n"
        "/care — Start a care session\n"
        "/endcare — Finish the care session\n"
        "/addplant <name> — Add a plant with AI recommendations\n"
        "/ask <n> <question> — Ask about plant #n from /plants\n"
        "/backup — Create a backup now\n"
        "/backups — List available backups\n"
        "/restore <n> — Restore backup #n from /backups\n"
        "/help — Show this message\n\n"
        "Send a JSON file to bulk-import plants.",
        parse_mode="Markdown",
    )


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

_PLANT_SORT_ARGS = {
    "az": PlantsSortOption.NAME_ASCENDING,
    "za": PlantsSortOption.NAME_DESCENDING,
    "next": PlantsSortOption.NEXT_WATERING_DUE,
    "last": PlantsSortOption.LAST_WATERING_DUE,
    "space": PlantsSortOption.GROUP_BY_SPACE_ASCENDING,
    "space-za": PlantsSortOption.GROUP_BY_SPACE_DESCENDING,
}

_SPACE_SORT_ARGS = {
    "az": SpacesSortOption.NAME_ASCENDING,
    "za": SpacesSortOption.NAME_DESCENDING,
    "most": SpacesSortOption.MOST_PLANTS,
    "fewest": SpacesSortOption.FEWEST_PLANTS,
}


def _listed_plants(context: ContextTypes.DEFAULT_TYPE) -> list:
    """Plants in the order last shown by /plants (falls back to store order)."""
    store = _ctx(context).store
    ids = context.user_data.get("listed_plant_ids")
    if not ids:
        return list(store.plants)
    return [p for p in (store.get_plant(pid) for pid in ids) if p is not None]


@authorized_only
async def cmd_plants(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /plants [sort] — numbered plant list."""
    store = _ctx(context).store
    option = PlantsSortOption.GROUP_BY_SPACE_ASCENDING
    if context.args:
        option = _PLANT_SORT_ARGS.get(context.args[0].lower(), option)

    if not store.plants:
        await update.message.reply_text("No plants yet. Use /addplant <name> to add one.")
        return

    now = datetime.now()
    plants = sort_plants(store.plants, option, store, now)
    context.user_data["listed_plant_ids"] = [p.id for p in plants]

    lines = [f"*Plants* ({option.value}):\n"]
    for i, plant in enumerate(plants, start=1):
        next_water = care_schedule.next_watering_date(plant, now)
        water = f"water {next_water.isoformat()}" if next_water else "no watering step"
        lines.append(
            f"{i}. {_md(plant.name)} — {_md(store.space_name_for_plant(plant))}, {water}"
        )
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_spaces(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /spaces [sort] — rooms and zones with plant counts."""
    store = _ctx(context).store
    option = SpacesSortOption.NAME_ASCENDING
    if context.args:
        option = _SPACE_SORT_ARGS.get(context.args[0].lower(), option)

    spaces = sort_spaces([*store.rooms, *store.zones], option, store)
    if not spaces:
        await update.message.reply_text("No rooms or zones yet.")
        return

    lines = [f"*Spaces* ({option.value}):\n"]
    for space in spaces:
        if isinstance(space, Room):
            count, kind = len(store.plants_in_room(space.id)), "indoor"
        else:
            count, kind = len(store.plants_in_zone(space.id)), "outdoor"
        lines.append(f"• {_md(space.name)} ({kind}) — {count} plant(s)")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_due(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /due — overdue and due-today steps."""
    store = _ctx(context).store
    now = datetime.now()
    overdue = store.all_overdue_care_steps(now)
    overdue_ids = {(p.id, s.id) for p, s in overdue}
    due_today = [
        (p, s) for p, s in store.all_due_today_care_steps(now) if (p.id, s.id) not in overdue_ids
    ]

    if not overdue and not due_today:
        await update.message.reply_text("🌿 All caught up, nothing needs care today.")
        return

    lines: list[str] = []
    if overdue:
        lines.append("*Overdue:*")
        for plant, step in overdue:
            days = care_schedule.days_overdue(step, now)
            suffix = f" ({days}d late)" if days else ""
            lines.append(f"• {_md(plant.name)}: {_md(step.display_name)}{suffix}")
    if due_today:
        lines.append("\n*Due today:*")
        for plant, step in due_today:
            lines.append(f"• {_md(plant.name)}: {_md(step.display_name)}")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


# ---------------------------------------------------------------------------
# Care session
# ---------------------------------------------------------------------------


def _care_items(ctx: AppContext) -> list[tuple[str, str]]:
    """(plant_id, step_id) for every step needing care, in care-routine order."""
    store = ctx.store
    now = datetime.now()
    needing = {(p.id, s.id) for p, s in store.all_overdue_care_steps(now)}
    needing |= {(p.id, s.id) for p, s in store.all_due_today_care_steps(now)}

    ordered_plants = []
    for room in store.ordered_rooms_for_care_routine():
        ordered_plants.extend(store.plants_in_room(room.id))
    for zone in store.ordered_zones_for_care_routine():
        ordered_plants.extend(store.plants_in_zone(zone.id))
    placed = {p.id for p in ordered_plants}
    ordered_plants.extend(p for p in store.plants if p.id not in placed)

    return [
        (plant.id, step.id)
        for plant in ordered_plants
        for step in plant.enabled_care_steps
        if (plant.id, step.id) in needing
    ]


def _care_keyboard(ctx: AppContext, items: list[tuple[str, str]]) -> InlineKeyboardMarkup:
    session = ctx.store.care_session
    rows = []
    for i, (plant_id, step_id) in enumerate(items):
        plant = ctx.store.get_plant(plant_id)
        step = plant.care_step(step_id) if plant else None
        if step is None:
            continue
        done = session is not None and session.is_step_completed(plant_id, step_id)
        mark = "✅" if done else "⬜"
        rows.append([InlineKeyboardButton(
            f"{mark} {plant.name}: {step.display_name}", callback_data=f"care:{i}",
        )])
    return InlineKeyboardMarkup(rows)


@authorized_only
async def cmd_care(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /care — start a session and show toggle buttons."""
    ctx = _ctx(context)
    items = _care_items(ctx)
    if not items:
        await update.message.reply_text("🌿 Nothing needs care right now.")
        return

    ctx.store.start_care_session()
    context.user_data["care_items"] = items
    await update.message.reply_text(
        f"*Care session* — {len(items)} step(s). Tap to mark done, tap again to undo.\n"
        "Use /endcare when finished.",
        parse_mode="Markdown",
        reply_markup=_care_keyboard(ctx, items),
    )


async def _handle_care_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Toggle one step of the active care session."""
    query = update.callback_query
    await query.answer()
    if not _is_authorized(query.from_user):
        return

    ctx = _ctx(context)
    items: list[tuple[str, str]] = context.user_data.get("care_items", [])
    session = ctx.store.care_session
    if session is None or not items:
        await query.edit_message_text("No active care session. Use /care to start one.")
        return

    index = int(query.data.split(":")[1])
    if index >= len(items):
        return
    plant_id, step_id = items[index]

    try:
        if session.is_step_completed(plant_id, step_id):
            ctx.store.unmark_care_step_completed(plant_id, step_id)
        else:
            ctx.store.mark_care_step_completed(plant_id, step_id)
    except ValueError as exc:
        logger.warning("Care toggle failed: %s", exc)
        await query.edit_message_text("That plant or step no longer exists. Use /care to restart.")
        return

    await query.edit_message_reply_markup(reply_markup=_care_keyboard(ctx, items))


@authorized_only
async def cmd_endcare(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /endcare — close the session and summarize."""
    ctx = _ctx(context)
    session = ctx.store.care_session
    if session is None:
        await update.message.reply_text("No active care session.")
        return
    done = len(session.completed)
    total = len(context.user_data.pop("care_items", []))
    ctx.store.end_care_session()
    await update.message.reply_text(f"✅ Care session finished: {done}/{total} step(s) done.")


# ---------------------------------------------------------------------------
# Backups
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_backup(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /backup — write a snapshot now."""
    backups = _ctx(context).backups
    if backups.is_backup_in_progress:
        await update.message.reply_text("A backup is already running.")
        return
    try:
        info = await backups.perform_backup()
    except BackupError as exc:
        logger.error("/backup failed: %s", exc)
        await update.message.reply_text(f"Backup failed: {exc}")
        return

    msg = (
        f"✅ Backup saved: `{info.path.name}`\n"
        f"{info.metadata.plant_count} plants, {info.metadata.room_count} rooms, "
        f"{info.metadata.zone_count} zones"
    )
    if info.local_only:
        msg += "\n⚠️ Cloud folder unavailable, saved locally only."
    await update.message.reply_text(msg, parse_mode="Markdown")


@authorized_only
async def cmd_backups(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /backups — numbered list, newest first."""
    backups = await _ctx(context).backups.list_available_backups()
    if not backups:
        await update.message.reply_text("No backups found. Use /backup to create one.")
        return

    lines = ["*Available backups:*\n"]
    for i, info in enumerate(backups, start=1):
        meta = info.metadata
        where = "local" if info.local_only else "cloud"
        lines.append(
            f"{i}. {meta.date:%Y-%m-%d %H:%M} — {meta.plant_count} plants, "
            f"{_md(meta.device_name)} ({where}, {info.file_size // 1024 or 1} KB)"
        )
    lines.append("\nUse /restore <n> to restore one.")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


@authorized_only
async def cmd_restore(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /restore <n> — replace all data with backup #n."""
    backups = _ctx(context).backups
    if not context.args:
        await update.message.reply_text("Usage: /restore <n>\nUse /backups to see numbers.")
        return
    try:
        index = int(context.args[0]) - 1
    except ValueError:
        await update.message.reply_text("Invalid backup number. Use /backups to see valid numbers.")
        return

    available = backups.available_backups or await backups.list_available_backups()
    if not 0 <= index < len(available):
        await update.message.reply_text("No backup with that number. Use /backups to list them.")
        return

    try:
        meta = await backups.restore_from_backup(available[index].path)
    except BackupError as exc:
        logger.error("/restore failed: %s", exc)
        await update.message.reply_text(f"Restore failed: {exc}")
        return

    context.user_data.pop("care_items", None)
    context.user_data.pop("listed_plant_ids", None)
    await update.message.reply_text(
        f"✅ Restored backup from {meta.date:%Y-%m-%d %H:%M} "
        f"({meta.plant_count} plants, {meta.room_count} rooms, {meta.zone_count} zones)."
    )


# ---------------------------------------------------------------------------
# AI: add plant / ask / identify
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_addplant(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /addplant <name> — AI recommendation, then confirm."""
    from plantcare.core.plant_advisor import generate_recommendation, plant_from_recommendation

    store = _ctx(context).store
    name = " ".join(context.args or []).strip()
    if not name:
        await update.message.reply_text("Usage: /addplant <plant name>")
        return

    processing_msg = await update.message.reply_text(f"🌱 Asking for care advice on {name}...")
    try:
        response = await generate_recommendation(name, store.rooms, store.zones)
    except LLMError as exc:
        logger.error("/addplant LLM error: %s", exc)
        await processing_msg.edit_text(f"Couldn't get recommendations: {exc}")
        return

    plant = plant_from_recommendation(response, store)
    context.user_data["pending_plant"] = plant

    steps = "\n".join(
        f"• {_md(s.display_name)} every {s.frequency_days}d: {_md(s.instructions)}"
        for s in plant.care_steps
    )
    latin = f" (_{_md(plant.latin_name)}_)" if plant.latin_name else ""
    await processing_msg.edit_text(
        f"*{_md(plant.name)}*{latin}\n"
        f"Light: {response.light_type.value}, facing {response.preferred_light_direction.value}\n"
        f"Place in: {_md(store.space_name_for_plant(plant))}\n\n"
        f"{steps}\n\nAdd this plant?",
        parse_mode="Markdown",
        reply_markup=InlineKeyboardMarkup([[
            InlineKeyboardButton("Add", callback_data="addplant:confirm"),
            InlineKeyboardButton("Cancel", callback_data="addplant:cancel"),
        ]]),
    )


async def _handle_addplant_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    if not _is_authorized(query.from_user):
        return

    plant = context.user_data.pop("pending_plant", None)
    if plant is None or query.data.endswith(":cancel"):
        await query.edit_message_text("Cancelled.")
        return
    try:
        _ctx(context).store.add_plant(plant)
    except ValueError as exc:
        logger.error("Adding recommended plant failed: %s", exc)
        await query.edit_message_text(f"Couldn't add the plant: {exc}")
        return
    await query.edit_message_text(f"✅ {plant.name} added.")


@authorized_only
async def cmd_ask(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /ask <n> <question> — question about a listed plant."""
    from plantcare.core.plant_advisor import answer_question

    args = context.args or []
    if len(args) < 2:
        await update.message.reply_text("Usage: /ask <n> <question>\nUse /plants to see numbers.")
        return
    plants = _listed_plants(context)
    try:
        plant = plants[int(args[0]) - 1]
    except (ValueError, IndexError):
        await update.message.reply_text("No plant with that number. Use /plants to list them.")
        return

    store = _ctx(context).store
    try:
        response = await answer_question(" ".join(args[1:]), plant, store.rooms, store.zones)
    except LLMError as exc:
        logger.error("/ask LLM error: %s", exc)
        await update.message.reply_text(f"Couldn't get an answer: {exc}")
        return

    if response.suggested_changes is None:
        await update.message.reply_text(response.answer)
        return

    context.user_data["pending_change"] = (plant.id, response.suggested_changes)
    await update.message.reply_text(
        f"{response.answer}\n\nI have some suggested changes for {plant.name}.",
        reply_markup=InlineKeyboardMarkup([[
            InlineKeyboardButton("Apply", callback_data="change:apply"),
            InlineKeyboardButton("Dismiss", callback_data="change:dismiss"),
        ]]),
    )


async def _handle_change_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    from plantcare.core.plant_advisor import apply_suggested_changes

    query = update.callback_query
    await query.answer()
    if not _is_authorized(query.from_user):
        return

    pending = context.user_data.pop("pending_change", None)
    if pending is None or query.data.endswith(":dismiss"):
        await query.edit_message_text("No changes made.")
        return

    store = _ctx(context).store
    plant_id, suggestion = pending
    plant = store.get_plant(plant_id)
    if plant is None:
        await query.edit_message_text("That plant no longer exists.")
        return
    try:
        store.update_plant(apply_suggested_changes(plant, suggestion, store))
    except ValueError as exc:
        logger.error("Applying suggested changes failed: %s", exc)
        await query.edit_message_text(f"Couldn't apply changes: {exc}")
        return
    await query.edit_message_text(f"✅ {plant.name} updated.")


@authorized_only
async def handle_photo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle photo messages — identify the plant."""
    from plantcare.core.plant_advisor import identify_plant

    photo = update.message.photo[-1]
    try:
        photo_file = await context.bot.get_file(photo.file_id)
        image = bytes(await photo_file.download_as_bytearray())
        guess = await identify_plant(image)
    except LLMError as exc:
        logger.error("Identification LLM error: %s", exc)
        await update.message.reply_text(f"Couldn't identify the plant: {exc}")
        return
    except Exception as exc:
        logger.error("Photo handling error: %s", exc)
        await update.message.reply_text("Sorry, I couldn't process that photo. Please try again.")
        return

    if guess.is_unknown:
        await update.message.reply_text("🤔 I couldn't identify this plant with certainty.")
        return
    latin = f" ({guess.latin_name})" if guess.latin_name else ""
    await update.message.reply_text(
        f"🌿 This looks like {guess.common_name}{latin}.\n"
        f"Use /addplant {guess.common_name} to add it."
    )


@authorized_only
async def handle_import_file(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle a JSON document — bulk-import plants."""
    from plantcare.core.importer import PlantImportError, import_plants, parse_import

    document = update.message.document
    try:
        doc_file = await context.bot.get_file(document.file_id)
        items = parse_import(bytes(await doc_file.download_as_bytearray()))
    except PlantImportError as exc:
        await update.message.reply_text(f"Couldn't read the import file: {exc}")
        return

    result = import_plants(_ctx(context).store, items, create_missing_rooms=True)
    msg = f"✅ Imported {len(result.plants)} plant(s)."
    if result.created_rooms:
        msg += "\nNew rooms: " + ", ".join(r.name for r in result.created_rooms)
    await update.message.reply_text(msg)


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


async def _post_init(app: Application) -> None:
    """Run the startup backup check once the bot is up."""
    ctx: AppContext = app.bot_data["ctx"]
    await ctx.backups.schedule_automatic_backup()


async def _post_shutdown(app: Application) -> None:
    ctx: AppContext = app.bot_data["ctx"]
    ctx.close()


def build_app(ctx: AppContext | None = None) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        ctx: Service container. Defaults to one built from settings.
    """
    if ctx is None:
        from plantcare.app_context import build_context
        ctx = build_context(settings)

    app = (
        ApplicationBuilder()
        .token(settings.TELEGRAM_BOT_TOKEN)
        .post_init(_post_init)
        .post_shutdown(_post_shutdown)
        .build()
    )
    app.bot_data["ctx"] = ctx

    # Commands
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("plants", cmd_plants))
    app.add_handler(CommandHandler("spaces", cmd_spaces))
    app.add_handler(CommandHandler("due", cmd_due))
    app.add_handler(CommandHandler("care", cmd_care))
    app.add_handler(CommandHandler("endcare", cmd_endcare))
    app.add_handler(CommandHandler("backup", cmd_backup))
    app.add_handler(CommandHandler("backups", cmd_backups))
    app.add_handler(CommandHandler("restore", cmd_restore))
    app.add_handler(CommandHandler("addplant", cmd_addplant))
    app.add_handler(CommandHandler("ask", cmd_ask))
    app.add_handler(CallbackQueryHandler(_handle_care_callback, pattern=r"^care:\d+$"))
    app.add_handler(CallbackQueryHandler(_handle_addplant_callback, pattern=r"^addplant:"))
    app.add_handler(CallbackQueryHandler(_handle_change_callback, pattern=r"^change:"))

    app.add_handler(MessageHandler(filters.PHOTO, handle_photo))
    app.add_handler(MessageHandler(filters.Document.FileExtension("json"), handle_import_file))

    _setup_daily_reminder(app, ctx)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def _setup_daily_reminder(app: Application, ctx: AppContext) -> None:
    """Keep the daily care reminder job in sync with the store."""
    from plantcare.adapters.telegram_notifier import TelegramReminderScheduler

    tz = ZoneInfo(settings.TIMEZONE)
    reminder_time = dt_time(
        hour=settings.REMINDER_HOUR, minute=settings.REMINDER_MINUTE, tzinfo=tz,
    )
    scheduler = TelegramReminderScheduler(
        app.job_queue, settings.ALLOWED_USER_IDS, reminder_time,
        summary_source=ctx.reminder_summary,
    )
    ctx.start_reminders(scheduler)
    # Steps fall due at calendar-day boundaries
    scheduler.schedule_daily_check(ctx.refresh_reminders, dt_time(hour=0, minute=5, tzinfo=tz))

    logger.info(
        "Daily care reminder at %02d:%02d %s",
        settings.REMINDER_HOUR, settings.REMINDER_MINUTE, settings.TIMEZONE,
    )


def main() -> None:
    """Entry point: build the app and start polling."""
    logger.info("Starting PlantCare bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
