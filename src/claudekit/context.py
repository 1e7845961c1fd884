"""Application context with dependency injection.

The ClaudeKitContext dataclass holds all dependencies (config, clock,
checksum cache) and is created once at the CLI entry point, then threaded
through the application via Click's context system.
"""

from dataclasses import dataclass
from pathlib import Path

import click

from claudekit.clock import Clock, RealClock
from claudekit.config import GlobalConfig, load_global_config
from claudekit.errors import UnknownKitError
from claudekit.io.checksum import ChecksumCache


@dataclass(frozen=True)
class ClaudeKitContext:
    """Immutable context holding all dependencies for claudekit operations.

    Frozen to prevent accidental modification at runtime. The checksum cache
    is the only mutable collaborator; it lives for one invocation and can be
    reset with `checksum_cache.clear()`.

    Attributes:
        cwd: Current working directory (default local install target)
        config: Global configuration loaded at startup
        checksum_cache: Per-invocation memo of file checksums
        clock: Source of timestamps for metadata.json
        debug: Debug flag for error handling (full stack traces)
    """

    cwd: Path
    config: GlobalConfig
    checksum_cache: ChecksumCache
    clock: Clock
    debug: bool

    @staticmethod
    def for_test(
        cwd: Path | None = None,
        config: GlobalConfig | None = None,
        checksum_cache: ChecksumCache | None = None,
        clock: Clock | None = None,
        debug: bool = False,
    ) -> "ClaudeKitContext":
        """Create test context with optional pre-configured implementations.

        Uses a FakeClock by default so manifest timestamps are deterministic.

        Args:
            cwd: Current working directory (defaults to Path("/fake/project"))
            config: GlobalConfig (defaults to GlobalConfig.defaults() with
                global_dir under cwd)
            checksum_cache: Cache instance (defaults to a fresh ChecksumCache)
            clock: Clock implementation (defaults to FakeClock)
            debug: Whether to enable debug mode (default False)

        Returns:
            ClaudeKitContext configured with provided values and test defaults

        Example:
            >>> ctx = ClaudeKitContext.for_test(cwd=tmp_path)
            >>> result = install_kit(ctx, request)
        """
        from claudekit.clock.fake import FakeClock

        resolved_cwd = cwd if cwd is not None else Path("/fake/project")
        resolved_config = (
            config
            if config is not None
            else GlobalConfig(
                default_kit="engineer",
                concurrency=4,
                global_dir=resolved_cwd / "global-claude",
            )
        )

        return ClaudeKitContext(
            cwd=resolved_cwd,
            config=resolved_config,
            checksum_cache=checksum_cache if checksum_cache is not None else ChecksumCache(),
            clock=clock if clock is not None else FakeClock(),
            debug=debug,
        )


def create_context(*, debug: bool) -> ClaudeKitContext:
    """Create production context with real implementations.

    Called once at CLI entry point to create the context for the entire
    command execution.

    Args:
        debug: If True, enable debug mode (full stack traces in error handling)

    Returns:
        ClaudeKitContext with loaded config and a fresh checksum cache
    """
    try:
        config = load_global_config()
    except (ValueError, UnknownKitError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1) from None

    return ClaudeKitContext(
        cwd=Path.cwd(),
        config=config,
        checksum_cache=ChecksumCache(),
        clock=RealClock(),
        debug=debug,
    )
