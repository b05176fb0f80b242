"""Tests for the persistent typing indicator."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from voiceover.channels.typing_indicator import TypingIndicator


class _Transport:
    def __init__(self, side_effect=None):
        self.send_chat_action = AsyncMock(side_effect=side_effect)


class TestTypingIndicator:
    @pytest.mark.asyncio
    async def test_first_action_sent_immediately(self):
        transport = _Transport()
        typing = TypingIndicator(transport, chat_id=100, interval=60)

        typing.start()
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        transport.send_chat_action.assert_awaited_once_with(100, "typing")
        assert typing.active
        typing.stop()

    @pytest.mark.asyncio
    async def test_refreshed_on_interval(self):
        transport = _Transport()
        typing = TypingIndicator(transport, chat_id=100, interval=0.01)

        typing.start()
        await asyncio.sleep(0.055)
        typing.stop()

        assert transport.send_chat_action.await_count >= 3

    @pytest.mark.asyncio
    async def test_no_actions_after_stop(self):
        transport = _Transport()
        typing = TypingIndicator(transport, chat_id=100, interval=0.01)

        typing.start()
        await asyncio.sleep(0.025)
        typing.stop()
        await asyncio.sleep(0)
        count = transport.send_chat_action.await_count
        await asyncio.sleep(0.03)

        assert transport.send_chat_action.await_count == count
        assert not typing.active

    @pytest.mark.asyncio
    async def test_stop_is_idempotent_and_safe_before_start(self):
        typing = TypingIndicator(_Transport(), chat_id=100)

        typing.stop()
        typing.start()
        typing.stop()
        typing.stop()

        assert not typing.active

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_task(self):
        transport = _Transport()
        typing = TypingIndicator(transport, chat_id=100, interval=60)

        typing.start()
        typing.start()
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        typing.stop()

        assert transport.send_chat_action.await_count == 1

    @pytest.mark.asyncio
    async def test_send_failures_do_not_end_loop(self):
        transport = _Transport(side_effect=RuntimeError("flood control"))
        typing = TypingIndicator(transport, chat_id=100, interval=0.01)

        typing.start()
        await asyncio.sleep(0.035)

        assert typing.active
        assert transport.send_chat_action.await_count >= 2
        typing.stop()
