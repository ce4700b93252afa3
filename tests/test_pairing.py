"""
Tests for the Pairing Engine.

These tests verify:
1. REQUEST: a code is stored and posted to the channel
2. REDEEM: a code links exactly once, then is gone
3. MODES: single replaces the channel's mapping, multiple fans in
4. EXPIRY: only codes past the max age are swept
"""

from datetime import datetime, timedelta, timezone

import pytest

from channel_bridge.core.exceptions import InvalidCode, PersistenceError, TeamNotFound
from channel_bridge.models import ConnectionType, Mapping, PendingCode

from .conftest import DEFAULT_BOT_ID, DEFAULT_BOT_USERNAME, WORKSPACE_ID, count_rows


# =============================================================================
# TEST: REQUEST PAIRING
# =============================================================================


class TestRequestPairing:

    async def test_request_stores_code_and_posts_instructions(self, pairing, store, slack):
        code = await pairing.request_pairing("C1", "U1", WORKSPACE_ID, DEFAULT_BOT_USERNAME, DEFAULT_BOT_ID)

        pending = await store.get_pending_code(code, DEFAULT_BOT_ID)
        assert pending is not None
        assert pending.slack_channel_id == "C1"
        assert pending.slack_user_id == "U1"
        assert pending.slack_workspace_id == WORKSPACE_ID

        assert len(slack.posted) == 1
        assert slack.posted[0]["channel"] == "C1"
        assert f"`{code}`" in slack.posted[0]["text"]
        assert f"@{DEFAULT_BOT_USERNAME}" in slack.posted[0]["text"]

    async def test_codes_are_unique(self, pairing):
        codes = {
            await pairing.request_pairing("C1", "U1", WORKSPACE_ID, DEFAULT_BOT_USERNAME, DEFAULT_BOT_ID)
            for _ in range(5)
        }
        assert len(codes) == 5

    async def test_unknown_team_fails(self, pairing, engine):
        with pytest.raises(TeamNotFound):
            await pairing.request_pairing("C1", "U1", "W-unknown", DEFAULT_BOT_USERNAME, DEFAULT_BOT_ID)
        assert await count_rows(engine, PendingCode) == 0

    async def test_storage_failure_tells_channel_to_retry(self, pairing, store, slack, monkeypatch):
        async def broken(**kwargs):
            raise PersistenceError("create_pending_code failed")

        monkeypatch.setattr(store, "create_pending_code", broken)

        with pytest.raises(PersistenceError):
            await pairing.request_pairing("C1", "U1", WORKSPACE_ID, DEFAULT_BOT_USERNAME, DEFAULT_BOT_ID)

        assert [p["text"] for p in slack.posted] == [
            "An error occurred while generating the code. Please try again."
        ]


# =============================================================================
# TEST: REDEEM CODE
# =============================================================================


class TestRedeemCode:

    async def test_redeem_once_then_invalid(self, pairing, engine):
        code = await pairing.request_pairing("C1", "U1", WORKSPACE_ID, DEFAULT_BOT_USERNAME, DEFAULT_BOT_ID)

        paired = await pairing.redeem_code(code, DEFAULT_BOT_ID, "T1", "Ops group")
        assert paired.slack_channel_id == "C1"
        assert paired.telegram_chat_id == "T1"
        assert paired.connection_type == ConnectionType.SINGLE

        with pytest.raises(InvalidCode):
            await pairing.redeem_code(code, DEFAULT_BOT_ID, "T1")

        assert await count_rows(engine, Mapping) == 1

    async def test_code_is_bound_to_its_bot(self, pairing, store):
        code = await pairing.request_pairing("C1", "U1", WORKSPACE_ID, DEFAULT_BOT_USERNAME, DEFAULT_BOT_ID)

        with pytest.raises(InvalidCode):
            await pairing.redeem_code(code, "B-other", "T1")

        assert await store.get_pending_code(code, DEFAULT_BOT_ID) is not None

    async def test_unknown_code_is_invalid(self, pairing):
        with pytest.raises(InvalidCode):
            await pairing.redeem_code("hello there", DEFAULT_BOT_ID, "T1")

    async def test_second_chat_cannot_reuse_code(self, pairing, store):
        code = await pairing.request_pairing("C1", "U1", WORKSPACE_ID, DEFAULT_BOT_USERNAME, DEFAULT_BOT_ID)
        await store.set_connection_type("C1", WORKSPACE_ID, ConnectionType.MULTIPLE)

        await pairing.redeem_code(code, DEFAULT_BOT_ID, "T1")
        with pytest.raises(InvalidCode):
            await pairing.redeem_code(code, DEFAULT_BOT_ID, "T2")

        mappings = await store.list_mappings_for_channel("C1", WORKSPACE_ID)
        assert [m.telegram_chat_id for m in mappings] == ["T1"]

    async def test_scenario_code_creates_mapping_and_disappears(self, pairing, store, engine):
        code = "c9b1e2f4-0000-4000-8000-000000000001"
        await store.create_pending_code(code, "C1", "U1", WORKSPACE_ID, DEFAULT_BOT_ID)

        await pairing.redeem_code(code, DEFAULT_BOT_ID, "T1")

        mappings = await store.list_mappings_for_chat("T1", DEFAULT_BOT_ID)
        assert len(mappings) == 1
        mapping = mappings[0]
        assert (
            mapping.telegram_chat_id,
            mapping.slack_channel_id,
            mapping.slack_workspace_id,
            mapping.telegram_bot_id,
        ) == ("T1", "C1", WORKSPACE_ID, DEFAULT_BOT_ID)
        assert await store.get_pending_code(code, DEFAULT_BOT_ID) is None
        assert await count_rows(engine, PendingCode) == 0

    async def test_failed_mapping_write_still_burns_code(self, pairing, store, monkeypatch):
        code = await pairing.request_pairing("C1", "U1", WORKSPACE_ID, DEFAULT_BOT_USERNAME, DEFAULT_BOT_ID)

        async def broken(**kwargs):
            raise PersistenceError("replace_channel_mapping failed")

        monkeypatch.setattr(store, "replace_channel_mapping", broken)

        with pytest.raises(PersistenceError):
            await pairing.redeem_code(code, DEFAULT_BOT_ID, "T1")

        assert await store.get_pending_code(code, DEFAULT_BOT_ID) is None
        with pytest.raises(InvalidCode):
            await pairing.redeem_code(code, DEFAULT_BOT_ID, "T1")

    async def test_paired_listeners_are_notified(self, pairing):
        seen = []

        async def listener(paired):
            seen.append(paired)

        pairing.on_paired(listener)
        code = await pairing.request_pairing("C1", "U1", WORKSPACE_ID, DEFAULT_BOT_USERNAME, DEFAULT_BOT_ID)
        await pairing.redeem_code(code, DEFAULT_BOT_ID, "T1", "Ops group")

        assert len(seen) == 1
        assert seen[0].telegram_chat_title == "Ops group"
        assert seen[0].slack_user_id == "U1"

    async def test_failing_listener_does_not_undo_pairing(self, pairing, store, engine):
        from channel_bridge.models import ErrorLog

        async def listener(paired):
            raise RuntimeError("notification failed")

        pairing.on_paired(listener)
        code = await pairing.request_pairing("C1", "U1", WORKSPACE_ID, DEFAULT_BOT_USERNAME, DEFAULT_BOT_ID)
        await pairing.redeem_code(code, DEFAULT_BOT_ID, "T1")

        assert len(await store.list_mappings_for_channel("C1", WORKSPACE_ID)) == 1
        assert await count_rows(engine, ErrorLog) == 1


# =============================================================================
# TEST: CONNECTION MODES
# =============================================================================


class TestConnectionModes:

    async def test_single_mode_keeps_one_mapping_per_channel(self, pairing, store, engine):
        first = await pairing.request_pairing("C1", "U1", WORKSPACE_ID, DEFAULT_BOT_USERNAME, DEFAULT_BOT_ID)
        await pairing.redeem_code(first, DEFAULT_BOT_ID, "T1")

        second = await pairing.request_pairing("C1", "U1", WORKSPACE_ID, DEFAULT_BOT_USERNAME, DEFAULT_BOT_ID)
        await pairing.redeem_code(second, DEFAULT_BOT_ID, "T2")

        mappings = await store.list_mappings_for_channel("C1", WORKSPACE_ID)
        assert [m.telegram_chat_id for m in mappings] == ["T2"]
        assert await count_rows(engine, Mapping) == 1

    async def test_multiple_mode_fans_in(self, pairing, store):
        await store.set_connection_type("C1", WORKSPACE_ID, ConnectionType.MULTIPLE)

        for chat_id in ("T1", "T2"):
            code = await pairing.request_pairing("C1", "U1", WORKSPACE_ID, DEFAULT_BOT_USERNAME, DEFAULT_BOT_ID)
            paired = await pairing.redeem_code(code, DEFAULT_BOT_ID, chat_id)
            assert paired.connection_type == ConnectionType.MULTIPLE

        mappings = await store.list_mappings_for_channel("C1", WORKSPACE_ID)
        assert sorted(m.telegram_chat_id for m in mappings) == ["T1", "T2"]

    async def test_multiple_mode_repairing_chat_moves_it(self, pairing, store):
        await store.set_connection_type("C1", WORKSPACE_ID, ConnectionType.MULTIPLE)
        await store.set_connection_type("C2", WORKSPACE_ID, ConnectionType.MULTIPLE)

        code = await pairing.request_pairing("C1", "U1", WORKSPACE_ID, DEFAULT_BOT_USERNAME, DEFAULT_BOT_ID)
        await pairing.redeem_code(code, DEFAULT_BOT_ID, "T1")
        code = await pairing.request_pairing("C2", "U1", WORKSPACE_ID, DEFAULT_BOT_USERNAME, DEFAULT_BOT_ID)
        await pairing.redeem_code(code, DEFAULT_BOT_ID, "T1")

        mappings = await store.list_mappings_for_chat("T1", DEFAULT_BOT_ID)
        assert [m.slack_channel_id for m in mappings] == ["C2"]


# =============================================================================
# TEST: EXPIRY
# =============================================================================


class TestExpireStaleCodes:

    async def test_only_old_codes_are_removed(self, pairing, store):
        now = datetime.now(timezone.utc)
        await store.create_pending_code("old", "C1", "U1", WORKSPACE_ID, DEFAULT_BOT_ID, created_at=now - timedelta(hours=2))
        await store.create_pending_code("edge", "C1", "U1", WORKSPACE_ID, DEFAULT_BOT_ID, created_at=now - timedelta(minutes=61))
        await store.create_pending_code("fresh", "C1", "U1", WORKSPACE_ID, DEFAULT_BOT_ID, created_at=now - timedelta(minutes=30))

        removed = await pairing.expire_stale_codes(now=now)

        assert removed == 2
        assert await store.get_pending_code("old", DEFAULT_BOT_ID) is None
        assert await store.get_pending_code("edge", DEFAULT_BOT_ID) is None
        assert await store.get_pending_code("fresh", DEFAULT_BOT_ID) is not None

    async def test_custom_max_age(self, pairing, store):
        now = datetime.now(timezone.utc)
        await store.create_pending_code("recent", "C1", "U1", WORKSPACE_ID, DEFAULT_BOT_ID, created_at=now - timedelta(minutes=10))

        assert await pairing.expire_stale_codes(max_age=timedelta(minutes=5), now=now) == 1

    async def test_expired_code_cannot_be_redeemed(self, pairing, store):
        now = datetime.now(timezone.utc)
        await store.create_pending_code("stale", "C1", "U1", WORKSPACE_ID, DEFAULT_BOT_ID, created_at=now - timedelta(hours=3))
        await pairing.expire_stale_codes(now=now)

        with pytest.raises(InvalidCode):
            await pairing.redeem_code("stale", DEFAULT_BOT_ID, "T1")
