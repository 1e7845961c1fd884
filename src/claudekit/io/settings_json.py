"""Read and write the kit's settings.json.

The merger never copies settings.json over an existing one; it loads both
sides through here, merges them, and writes the result back in one atomic
replace.
"""

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from claudekit.models.settings import ClaudeSettings

logger = logging.getLogger(__name__)


def load_settings(settings_path: Path) -> ClaudeSettings:
    """Parse settings.json, returning empty settings when the file is absent.

    Raises:
        ValueError: If the file is not JSON or does not look like settings
    """
    if not settings_path.exists():
        return ClaudeSettings.empty()

    raw = settings_path.read_text(encoding="utf-8")
    try:
        return ClaudeSettings.model_validate_json(raw)
    except ValidationError as e:
        raise ValueError(f"{settings_path} is not a valid settings file: {e}") from e


def save_settings(settings_path: Path, settings: ClaudeSettings) -> None:
    """Write settings.json through a sibling temp file and an atomic replace.

    Key order is preserved as merged (user keys first) and unknown keys are
    written back untouched.
    """
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = settings_path.with_name(f".{settings_path.name}.tmp")
    content = json.dumps(settings.to_dict(), indent=2) + "\n"

    try:
        temp_path.write_text(content, encoding="utf-8")
        temp_path.replace(settings_path)
    except OSError:
        if temp_path.exists():
            temp_path.unlink()
        raise
    logger.debug("Saved %s", settings_path)
