"""Tests for plantcare.bot.telegram_bot — Telegram bot handlers.

Tests the command handlers, the care-session buttons and authorization.
The store and backups are real (temp paths); the LLM is mocked.
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from plantcare.app_context import AppContext
from plantcare.bot.telegram_bot import (
    _handle_addplant_callback,
    _handle_care_callback,
    _handle_change_callback,
    cmd_ask,
    cmd_backup,
    cmd_backups,
    cmd_care,
    cmd_due,
    cmd_endcare,
    cmd_plants,
    cmd_restore,
    handle_import_file,
)
from plantcare.core.backup import BackupService
from plantcare.core.llm import UpstreamError
from plantcare.core.plant_advisor import PlantChangeSuggestion
from plantcare.data.models import CareStep, CareStepType, Direction, LightType, Plant


def _plant(name, days_ago=None, frequency=7):
    return Plant(
        name=name,
        preferred_light_direction=Direction.EAST,
        light_type=LightType.INDIRECT,
        care_steps=[CareStep(
            type=CareStepType.WATERING, instructions="Water", frequency_days=frequency,
            last_completed_date=datetime.now() - timedelta(days=days_ago) if days_ago is not None else None,
        )],
    )


def _make_update(text="", user_id=12345):
    """Create a mock Update with a text message from an authorized user."""
    update = MagicMock()
    update.message.text = text
    update.effective_user.id = user_id
    update.message.reply_text = AsyncMock()
    return update


def _make_callback(data, user_id=12345):
    update = MagicMock()
    query = update.callback_query
    query.data = data
    query.from_user.id = user_id
    query.answer = AsyncMock()
    query.edit_message_text = AsyncMock()
    query.edit_message_reply_markup = AsyncMock()
    return update


def _make_context(app_ctx, args=None):
    """Create a mock context with user_data dict and bot_data holding the app context."""
    context = MagicMock()
    context.user_data = {}
    context.args = args or []
    context.bot_data = {"ctx": app_ctx}
    return context


def _reply_text(update) -> str:
    return update.message.reply_text.call_args.args[0]


@pytest.fixture
def app_ctx(empty_store, kv_db, tmp_path):
    backups = BackupService(empty_store, kv_db, local_dir=str(tmp_path / "backups"), device_name="pi")
    return AppContext(kv=kv_db, store=empty_store, backups=backups)


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_stranger_is_ignored(self, app_ctx):
        update = _make_update(user_id=999)
        await cmd_due(update, _make_context(app_ctx))
        update.message.reply_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_stranger_callback_is_ignored(self, app_ctx):
        app_ctx.store.add_plant(_plant("Fern"))
        app_ctx.store.start_care_session()
        update = _make_callback("care:0", user_id=999)
        context = _make_context(app_ctx)
        context.user_data["care_items"] = [(p.id, p.care_steps[0].id) for p in app_ctx.store.plants]

        await _handle_care_callback(update, context)

        assert app_ctx.store.care_session.completed == {}
        update.callback_query.edit_message_reply_markup.assert_not_called()


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


class TestListing:
    @pytest.mark.asyncio
    async def test_due_all_caught_up(self, app_ctx):
        app_ctx.store.add_plant(_plant("Cactus", days_ago=1, frequency=30))
        update = _make_update()
        await cmd_due(update, _make_context(app_ctx))
        assert "All caught up" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_due_lists_overdue(self, app_ctx):
        app_ctx.store.add_plant(_plant("Fern", days_ago=10))
        update = _make_update()
        await cmd_due(update, _make_context(app_ctx))
        text = _reply_text(update)
        assert "Overdue" in text
        assert "Fern: Watering (3d late)" in text

    @pytest.mark.asyncio
    async def test_plants_remembers_listing_order(self, app_ctx):
        for name in ("Ivy", "Aloe", "Fern"):
            app_ctx.store.add_plant(_plant(name, days_ago=1))
        update = _make_update()
        context = _make_context(app_ctx, args=["az"])

        await cmd_plants(update, context)

        names = [app_ctx.store.get_plant(pid).name for pid in context.user_data["listed_plant_ids"]]
        assert names == ["Aloe", "Fern", "Ivy"]
        assert "1. Aloe" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_plants_empty(self, app_ctx):
        update = _make_update()
        await cmd_plants(update, _make_context(app_ctx))
        assert "No plants yet" in _reply_text(update)


# ---------------------------------------------------------------------------
# Care session
# ---------------------------------------------------------------------------


class TestCareSession:
    @pytest.mark.asyncio
    async def test_nothing_to_do(self, app_ctx):
        app_ctx.store.add_plant(_plant("Cactus", days_ago=1, frequency=30))
        update = _make_update()
        await cmd_care(update, _make_context(app_ctx))
        assert "Nothing needs care" in _reply_text(update)
        assert app_ctx.store.care_session is None

    @pytest.mark.asyncio
    async def test_mark_then_unmark(self, app_ctx):
        plant = app_ctx.store.add_plant(_plant("Fern"))
        step_id = plant.care_steps[0].id
        context = _make_context(app_ctx)

        await cmd_care(_make_update(), context)
        assert context.user_data["care_items"] == [(plant.id, step_id)]
        session = app_ctx.store.care_session
        assert session is not None

        await _handle_care_callback(_make_callback("care:0"), context)
        assert session.is_step_completed(plant.id, step_id)
        completed_at = app_ctx.store.get_plant(plant.id).care_steps[0].last_completed_date
        assert completed_at is not None

        update = _make_callback("care:0")
        await _handle_care_callback(update, context)
        assert not session.is_step_completed(plant.id, step_id)
        assert app_ctx.store.get_plant(plant.id).care_steps[0].last_completed_date == completed_at
        update.callback_query.edit_message_reply_markup.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_callback_without_session(self, app_ctx):
        update = _make_callback("care:0")
        await _handle_care_callback(update, _make_context(app_ctx))
        assert "No active care session" in update.callback_query.edit_message_text.call_args.args[0]

    @pytest.mark.asyncio
    async def test_endcare_summarizes(self, app_ctx):
        app_ctx.store.add_plant(_plant("Fern"))
        app_ctx.store.add_plant(_plant("Ivy"))
        context = _make_context(app_ctx)
        await cmd_care(_make_update(), context)
        await _handle_care_callback(_make_callback("care:1"), context)

        update = _make_update()
        await cmd_endcare(update, context)

        assert "1/2" in _reply_text(update)
        assert app_ctx.store.care_session is None
        assert "care_items" not in context.user_data


# ---------------------------------------------------------------------------
# Backups
# ---------------------------------------------------------------------------


class TestBackupCommands:
    @pytest.mark.asyncio
    async def test_backup_local_only_warning(self, app_ctx):
        update = _make_update()
        await cmd_backup(update, _make_context(app_ctx))
        text = _reply_text(update)
        assert "Backup saved" in text
        assert "saved locally only" in text

    @pytest.mark.asyncio
    async def test_backup_failure_reported(self, empty_store, kv_db):
        ctx = AppContext(kv=kv_db, store=empty_store, backups=BackupService(empty_store, kv_db))
        update = _make_update()
        await cmd_backup(update, _make_context(ctx))
        assert _reply_text(update).startswith("Backup failed")

    @pytest.mark.asyncio
    async def test_backups_empty(self, app_ctx):
        update = _make_update()
        await cmd_backups(update, _make_context(app_ctx))
        assert "No backups found" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_restore_by_number(self, app_ctx):
        app_ctx.store.add_plant(_plant("Fern"))
        await app_ctx.backups.perform_backup()
        app_ctx.store.delete_plant(app_ctx.store.plants[0].id)

        update = _make_update()
        await cmd_restore(update, _make_context(app_ctx, args=["1"]))

        assert "Restored backup" in _reply_text(update)
        assert [p.name for p in app_ctx.store.plants] == ["Fern"]

    @pytest.mark.asyncio
    async def test_restore_bad_number(self, app_ctx):
        update = _make_update()
        await cmd_restore(update, _make_context(app_ctx, args=["abc"]))
        assert "Invalid backup number" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_restore_out_of_range(self, app_ctx):
        update = _make_update()
        await cmd_restore(update, _make_context(app_ctx, args=["4"]))
        assert "No backup with that number" in _reply_text(update)


# ---------------------------------------------------------------------------
# AI flows
# ---------------------------------------------------------------------------


class TestAddPlantCallback:
    @pytest.mark.asyncio
    async def test_confirm_adds_pending_plant(self, app_ctx):
        context = _make_context(app_ctx)
        context.user_data["pending_plant"] = _plant("Monstera")
        update = _make_callback("addplant:confirm")

        await _handle_addplant_callback(update, context)

        assert [p.name for p in app_ctx.store.plants] == ["Monstera"]
        assert "pending_plant" not in context.user_data

    @pytest.mark.asyncio
    async def test_cancel(self, app_ctx):
        context = _make_context(app_ctx)
        context.user_data["pending_plant"] = _plant("Monstera")
        update = _make_callback("addplant:cancel")

        await _handle_addplant_callback(update, context)

        assert app_ctx.store.plants == []
        update.callback_query.edit_message_text.assert_awaited_once_with("Cancelled.")


class TestAsk:
    @pytest.mark.asyncio
    async def test_usage(self, app_ctx):
        update = _make_update()
        await cmd_ask(update, _make_context(app_ctx, args=["1"]))
        assert _reply_text(update).startswith("Usage")

    @pytest.mark.asyncio
    async def test_llm_error_reported(self, app_ctx):
        app_ctx.store.add_plant(_plant("Fern"))
        update = _make_update()
        with patch(
            "plantcare.core.plant_advisor.answer_question",
            new_callable=AsyncMock, side_effect=UpstreamError("overloaded"),
        ):
            await cmd_ask(update, _make_context(app_ctx, args=["1", "why", "yellow?"]))
        assert "overloaded" in _reply_text(update)

    @pytest.mark.asyncio
    async def test_suggestion_then_apply(self, app_ctx):
        plant = app_ctx.store.add_plant(_plant("Fern"))
        response = MagicMock()
        response.answer = "Give it more humidity."
        response.suggested_changes = PlantChangeSuggestion(general_notes="Mist daily")
        context = _make_context(app_ctx, args=["1", "help"])

        with patch(
            "plantcare.core.plant_advisor.answer_question",
            new_callable=AsyncMock, return_value=response,
        ):
            await cmd_ask(_make_update(), context)

        assert context.user_data["pending_change"][0] == plant.id
        await _handle_change_callback(_make_callback("change:apply"), context)
        assert app_ctx.store.get_plant(plant.id).general_notes == "Mist daily"


# ---------------------------------------------------------------------------
# Import
# ---------------------------------------------------------------------------


class TestImportFile:
    def _context(self, app_ctx, payload: bytes):
        context = _make_context(app_ctx)
        doc_file = MagicMock()
        doc_file.download_as_bytearray = AsyncMock(return_value=bytearray(payload))
        context.bot.get_file = AsyncMock(return_value=doc_file)
        return context

    @pytest.mark.asyncio
    async def test_undecodable_file_is_reported(self, app_ctx):
        update = _make_update()
        await handle_import_file(update, self._context(app_ctx, b"\xff\xfe[not utf8"))
        assert _reply_text(update).startswith("Couldn't read the import file")
        assert app_ctx.store.plants == []

    @pytest.mark.asyncio
    async def test_imports_plants(self, app_ctx):
        update = _make_update()
        await handle_import_file(update, self._context(app_ctx, b'[{"name": "Basil"}]'))
        assert "Imported 1 plant(s)" in _reply_text(update)
        assert [p.name for p in app_ctx.store.plants] == ["Basil"]
