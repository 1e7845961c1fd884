"""Tests for ClaudeKitContext construction."""

import dataclasses
from pathlib import Path

import pytest

from claudekit.clock.fake import DEFAULT_FAKE_NOW, FakeClock
from claudekit.context import ClaudeKitContext


def test_for_test_defaults(tmp_path: Path) -> None:
    ctx = ClaudeKitContext.for_test(cwd=tmp_path)

    assert ctx.cwd == tmp_path
    assert ctx.config.global_dir == tmp_path / "global-claude"
    assert isinstance(ctx.clock, FakeClock)
    assert ctx.clock.now_iso() == DEFAULT_FAKE_NOW.isoformat()
    assert ctx.debug is False


def test_context_is_frozen(tmp_path: Path) -> None:
    ctx = ClaudeKitContext.for_test(cwd=tmp_path)

    with pytest.raises(dataclasses.FrozenInstanceError):
        ctx.debug = True  # type: ignore[misc]


def test_fake_clock_counts_calls() -> None:
    clock = FakeClock()

    clock.now()
    clock.now_iso()

    assert clock.calls == 2
