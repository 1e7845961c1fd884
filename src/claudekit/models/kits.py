"""Known kits and kit-type inference."""

import re
from dataclasses import dataclass

from claudekit.errors import UnknownKitError


@dataclass(frozen=True)
class KitConfig:
    """Static description of a published kit."""

    name: str
    repo: str
    owner: str
    description: str


AVAILABLE_KITS: dict[str, KitConfig] = {
    "engineer": KitConfig(
        name="ClaudeKit Engineer",
        repo="claudekit-engineer",
        owner="claudekit",
        description="Engineering toolkit for building with Claude",
    ),
    "marketing": KitConfig(
        name="ClaudeKit Marketing",
        repo="claudekit-marketing",
        owner="claudekit",
        description="Marketing toolkit",
    ),
}

# Legacy single-kit manifests were only ever written by the engineer kit.
DEFAULT_LEGACY_KIT = "engineer"


def _matching_kits(display_name: str) -> list[str]:
    return [
        kit
        for kit in AVAILABLE_KITS
        if re.search(rf"\b{re.escape(kit)}\b", display_name, flags=re.IGNORECASE)
    ]


def infer_kit_type(display_name: str) -> str:
    """Infer the kit key from a display name such as "ClaudeKit Engineer".

    Matching uses word boundaries, so "engineering-notes" does not match
    "engineer".

    Raises:
        UnknownKitError: If no known kit matches, or more than one does
    """
    matches = _matching_kits(display_name)
    if len(matches) == 1:
        return matches[0]
    if not matches:
        known = ", ".join(sorted(AVAILABLE_KITS))
        raise UnknownKitError(
            f"Cannot determine kit from name '{display_name}'. "
            f"Pass the kit explicitly (known kits: {known})"
        )
    raise UnknownKitError(
        f"Kit name '{display_name}' is ambiguous: matches {', '.join(matches)}"
    )


def detect_legacy_kits(display_name: str | None) -> list[str]:
    """Return every kit named in a legacy manifest's display name.

    Unnamed or unrecognized legacy installs map to DEFAULT_LEGACY_KIT.
    """
    matches = _matching_kits(display_name or "")
    if matches:
        return matches
    return [DEFAULT_LEGACY_KIT]


def validate_kit_type(value: str) -> str:
    """Validate a kit identifier supplied by the user.

    Raises:
        UnknownKitError: If value is not a known kit key
    """
    if value not in AVAILABLE_KITS:
        known = ", ".join(sorted(AVAILABLE_KITS))
        raise UnknownKitError(f"Unknown kit '{value}' (known kits: {known})")
    return value
