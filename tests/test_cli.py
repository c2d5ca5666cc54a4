"""Tests for the stuck-generation sweep CLI."""

from datetime import timedelta

import pytest

from sigil.cli.sweep_stuck import async_main, parse_args
from sigil.core.timezone import utcnow
from sigil.models.generation import GenerationStatus


def test_parse_args_defaults():
    args = parse_args([])

    assert args.min_age is None
    assert args.stale is None
    assert args.verbose is False


def test_parse_args_overrides():
    args = parse_args(["--min-age", "30", "--stale", "10", "-v"])

    assert args.min_age == 30
    assert args.stale == 10
    assert args.verbose is True


@pytest.mark.asyncio
async def test_sweep_command_fails_stuck_generations(
    tmp_path, session_factory, create_generation, uow_factory, monkeypatch, capsys
):
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'sigil_test.db'}")
    stuck = await create_generation(created_at=utcnow() - timedelta(minutes=8))
    fresh = await create_generation()

    exit_code = await async_main(["--min-age", "5", "--stale", "5"])

    assert exit_code == 0
    assert "Generations failed: 1" in capsys.readouterr().out
    async with await uow_factory() as uow:
        assert (await uow.generations.get_by_id(stuck.id)).status == GenerationStatus.FAILED
        assert (await uow.generations.get_by_id(fresh.id)).status == GenerationStatus.PROCESSING
