"""Tests for the generation counter and delayed commands."""

import asyncio

import pytest

from storylines.core.commands import DelayedCommands
from storylines.core.generations import GenerationCounter


class TestGenerationCounter:
    def test_newer_ticket_supersedes_older(self):
        counter = GenerationCounter(clock=lambda: 42)
        first = counter.issue()
        second = counter.issue()

        assert not counter.is_current(first)
        assert counter.is_current(second)
        assert second.timestamp == 42

    def test_invalidate_supersedes_without_new_ticket(self):
        counter = GenerationCounter()
        ticket = counter.issue()
        counter.invalidate()

        assert not counter.is_current(ticket)
        assert counter.current == ticket.generation + 1


@pytest.mark.asyncio
class TestDelayedCommands:
    async def test_command_fires_after_delay(self):
        commands = DelayedCommands()
        fired = []
        commands.schedule("hide", 0.01, lambda: fired.append("hide"))

        assert commands.is_pending("hide")
        await asyncio.sleep(0.05)

        assert fired == ["hide"]
        assert not commands.is_pending("hide")

    async def test_cancel_all_prevents_firing(self):
        commands = DelayedCommands()
        fired = []
        commands.schedule("a", 0.01, lambda: fired.append("a"))
        commands.schedule("b", 0.01, lambda: fired.append("b"))

        assert commands.cancel_all() == 2
        await asyncio.sleep(0.05)

        assert fired == []
        assert commands.pending == []

    async def test_rescheduling_replaces_pending_command(self):
        commands = DelayedCommands()
        fired = []
        commands.schedule("hide", 0.01, lambda: fired.append(1))
        commands.schedule("hide", 0.01, lambda: fired.append(2))

        await asyncio.sleep(0.05)
        assert fired == [2]

    async def test_failing_callback_is_contained(self):
        commands = DelayedCommands()

        def explode():
            raise RuntimeError("boom")

        commands.schedule("boom", 0, explode)
        await asyncio.sleep(0.01)
        assert not commands.is_pending("boom")
