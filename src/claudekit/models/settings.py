"""Models for Claude Code settings.json structure."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MatcherGroup(BaseModel):
    """A group of hooks that share the same matcher pattern.

    In settings.json, hooks are organized by lifecycle event and then
    grouped by matcher pattern. Lifecycle events without tools (e.g.
    SessionStart) use groups with no matcher.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    matcher: str | None = None  # Tool name pattern (e.g., "Bash", "Write|Edit")
    hooks: list[dict[str, Any]] = Field(default_factory=list)

    def commands(self) -> list[str]:
        """Command strings of every hook entry in this group."""
        return [str(hook["command"]) for hook in self.hooks if hook.get("command")]


class ClaudeSettings(BaseModel):
    """Complete Claude Code settings.json structure.

    Hooks and MCP servers are modeled; every other key is preserved as an
    extra field.
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    hooks: dict[str, list[MatcherGroup]] = Field(default_factory=dict)
    mcp_servers: dict[str, dict[str, Any]] = Field(default_factory=dict, alias="mcpServers")

    @field_validator("hooks", mode="before")
    @classmethod
    def wrap_bare_entries(cls, v: Any) -> Any:
        """Accept bare {"type", "command"} entries by wrapping them in a group."""
        if not isinstance(v, dict):
            return v
        wrapped: dict[str, Any] = {}
        for lifecycle, entries in v.items():
            if not isinstance(entries, list):
                wrapped[lifecycle] = entries
                continue
            wrapped[lifecycle] = [
                {"hooks": [entry]} if isinstance(entry, dict) and "command" in entry else entry
                for entry in entries
            ]
        return wrapped

    @property
    def other(self) -> dict[str, Any]:
        """Extra fields that are neither hooks nor MCP servers."""
        return dict(self.__pydantic_extra__ or {})

    def to_dict(self) -> dict[str, Any]:
        """Convert to settings.json format, omitting empty hooks/mcpServers."""
        result = dict(self.other)
        if self.hooks:
            result["hooks"] = {
                lifecycle: [group.model_dump(exclude_none=True) for group in groups]
                for lifecycle, groups in self.hooks.items()
            }
        if self.mcp_servers:
            result["mcpServers"] = self.mcp_servers
        return result

    @staticmethod
    def empty() -> "ClaudeSettings":
        """Create an empty settings object."""
        return ClaudeSettings(hooks={})
