"""Adversarial tests — the process-wide bound on toolchain invocations."""

from __future__ import annotations

import asyncio

import pytest


def _sources(count: int) -> list[str]:
    return [f"pub struct Contract{i};\n#[opcode({i})]\nRun{i}," for i in range(count)]


class TestConcurrencyBound:
    @pytest.mark.asyncio
    async def test_two_slots_five_keys(self, make_orchestrator, make_toolchain):
        toolchain = make_toolchain(delay=0.05)
        orchestrator = make_orchestrator(toolchain, concurrency_limit=2)

        results = await asyncio.gather(
            *(orchestrator.compile(f"C{i}", s) for i, s in enumerate(_sources(5)))
        )

        assert len(results) == 5
        assert len(toolchain.calls) == 5
        assert toolchain.max_active == 2
        assert orchestrator.limiter.peak_active == 2
        assert orchestrator.limiter.active == 0
        assert orchestrator.limiter.waiting == 0

    @pytest.mark.asyncio
    async def test_single_slot_serializes(self, make_orchestrator, make_toolchain):
        toolchain = make_toolchain(delay=0.02)
        orchestrator = make_orchestrator(toolchain, concurrency_limit=1)
        await asyncio.gather(
            *(orchestrator.compile(f"C{i}", s) for i, s in enumerate(_sources(4)))
        )
        assert toolchain.max_active == 1

    @pytest.mark.asyncio
    async def test_failures_release_their_slots(self, make_orchestrator, make_toolchain):
        toolchain = make_toolchain(delay=0.02, fail=True)
        orchestrator = make_orchestrator(toolchain, concurrency_limit=2)
        results = await asyncio.gather(
            *(orchestrator.compile(f"C{i}", s) for i, s in enumerate(_sources(5))),
            return_exceptions=True,
        )
        assert all(isinstance(r, Exception) for r in results)
        assert orchestrator.limiter.active == 0

        toolchain.fail = False
        result = await orchestrator.compile("C0", _sources(1)[0])
        assert result.binary

    @pytest.mark.asyncio
    async def test_cache_hits_do_not_take_slots(self, make_orchestrator, make_toolchain):
        toolchain = make_toolchain()
        orchestrator = make_orchestrator(toolchain, concurrency_limit=1)
        source = _sources(1)[0]
        await orchestrator.compile("C", source)
        admitted = orchestrator.limiter.total_admitted
        await asyncio.gather(*(orchestrator.compile("C", source) for _ in range(5)))
        assert orchestrator.limiter.total_admitted == admitted
