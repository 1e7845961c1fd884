"""Operations for merging a kit's settings.json into the user's settings.json.

Merge strategy:
- hooks: per lifecycle event, user entries come first and are preserved; kit
  hooks are added deduplicated by normalized command string, merged into an
  existing group when the matcher is the same
- mcpServers: user servers are preserved, new kit servers are added
- other keys: kit keys are added only when the user has not set them

Kit hooks and servers recorded in InstalledSettings but missing from the
user's file were removed by the user and are not re-added.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from claudekit.models.metadata import InstalledSettings
from claudekit.models.settings import ClaudeSettings, MatcherGroup

logger = logging.getLogger(__name__)

_HOME_VARIANTS = re.compile(
    r'"\$CLAUDE_PROJECT_DIR"|\$CLAUDE_PROJECT_DIR|"\$\{HOME\}"|\$\{HOME\}|"\$HOME"'
    r'|"%USERPROFILE%"|%USERPROFILE%|"%CLAUDE_PROJECT_DIR%"|%CLAUDE_PROJECT_DIR%'
)
_WHITESPACE = re.compile(r"\s+")


def normalize_command(command: str | None) -> str:
    """Normalize a hook command for comparison.

    Project-dir and home-dir variables (quoted or not, POSIX or Windows
    spelling) all become `$HOME`, and runs of whitespace collapse.
    """
    if not command:
        return ""
    normalized = _HOME_VARIANTS.sub("$HOME", command)
    return _WHITESPACE.sub(" ", normalized).strip()


def _hook_key(hook: dict[str, Any]) -> str:
    command = hook.get("command")
    if command:
        return normalize_command(str(command))
    # Commandless hooks (e.g. prompt hooks) are compared by full content
    return json.dumps(hook, sort_keys=True)


@dataclass(frozen=True)
class SettingsMergeResult:
    settings: ClaudeSettings
    installed: InstalledSettings
    hooks_added: int = 0
    hooks_preserved: int = 0
    hooks_skipped_removed: int = 0
    mcp_servers_added: int = 0
    mcp_servers_preserved: int = 0
    mcp_servers_skipped_removed: int = 0
    duplicates: list[str] = field(default_factory=list)


def collect_installed_settings(
    source: ClaudeSettings, previous: InstalledSettings | None = None
) -> InstalledSettings:
    """Union of previously recorded kit entries and everything in source."""
    hooks = set(previous.hooks) if previous is not None else set()
    servers = set(previous.mcp_servers) if previous is not None else set()
    for groups in source.hooks.values():
        for group in groups:
            hooks.update(normalize_command(cmd) for cmd in group.commands())
    servers.update(source.mcp_servers)
    return InstalledSettings(hooks=sorted(hooks), mcp_servers=sorted(servers))


@dataclass
class _HookCounters:
    added: int = 0
    preserved: int = 0
    skipped_removed: int = 0
    duplicates: list[str] = field(default_factory=list)


def _merge_event(
    event: str,
    source_groups: list[MatcherGroup],
    dest_groups: list[MatcherGroup],
    previously_installed: set[str],
    counters: _HookCounters,
) -> list[MatcherGroup]:
    merged = list(dest_groups)
    counters.preserved += sum(len(group.hooks) for group in dest_groups)

    existing: set[str] = set()
    for group in dest_groups:
        existing.update(_hook_key(hook) for hook in group.hooks)

    for source_group in source_groups:
        new_hooks: list[dict[str, Any]] = []
        for hook in source_group.hooks:
            key = _hook_key(hook)
            if key in existing:
                counters.duplicates.append(f"{event}: duplicate {key[:50]!r}")
                continue
            if key in previously_installed:
                logger.debug("Not re-adding %s hook removed by user: %s", event, key)
                counters.skipped_removed += 1
                continue
            new_hooks.append(hook)
            existing.add(key)

        if not new_hooks:
            continue
        counters.added += len(new_hooks)

        index = next(
            (i for i, group in enumerate(merged) if group.matcher == source_group.matcher),
            None,
        )
        if index is None:
            merged.append(source_group.model_copy(update={"hooks": new_hooks}))
        else:
            target = merged[index]
            merged[index] = target.model_copy(update={"hooks": [*target.hooks, *new_hooks]})

    return merged


def merge_settings(
    source: ClaudeSettings,
    destination: ClaudeSettings,
    installed: InstalledSettings | None = None,
) -> SettingsMergeResult:
    """Merge kit settings (source) into the user's settings (destination).

    Args:
        source: settings.json shipped with the kit
        destination: The user's current settings.json
        installed: Entries this kit injected on previous installs

    Returns:
        SettingsMergeResult with merged settings, counts, and the updated
        InstalledSettings to record in the manifest
    """
    previous_hooks = set(installed.hooks) if installed is not None else set()
    previous_servers = set(installed.mcp_servers) if installed is not None else set()

    counters = _HookCounters()
    hooks = dict(destination.hooks)
    for event, source_groups in source.hooks.items():
        merged_groups = _merge_event(
            event, source_groups, destination.hooks.get(event, []), previous_hooks, counters
        )
        if merged_groups:
            hooks[event] = merged_groups

    servers = dict(destination.mcp_servers)
    servers_added = servers_preserved = servers_skipped = 0
    for name, config in source.mcp_servers.items():
        if name in destination.mcp_servers:
            servers_preserved += 1
            logger.debug("Preserved user MCP server: %s", name)
        elif name in previous_servers:
            servers_skipped += 1
            logger.debug("Not re-adding MCP server removed by user: %s", name)
        else:
            servers[name] = config
            servers_added += 1
            logger.debug("Added MCP server: %s", name)

    other = dict(destination.other)
    for key, value in source.other.items():
        if key not in other:
            other[key] = value

    merged = ClaudeSettings.model_validate(
        {
            **other,
            "hooks": {
                event: [group.model_dump(exclude_none=True) for group in groups]
                for event, groups in hooks.items()
            },
            "mcpServers": servers,
        }
    )

    for duplicate in counters.duplicates:
        logger.debug("settings.json %s", duplicate)

    return SettingsMergeResult(
        settings=merged,
        installed=collect_installed_settings(source, installed),
        hooks_added=counters.added,
        hooks_preserved=counters.preserved,
        hooks_skipped_removed=counters.skipped_removed,
        mcp_servers_added=servers_added,
        mcp_servers_preserved=servers_preserved,
        mcp_servers_skipped_removed=servers_skipped,
        duplicates=counters.duplicates,
    )
