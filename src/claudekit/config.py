"""Global configuration data structures and loading.

Provides immutable global config data loaded from ~/.claudekit/config.toml.
Loaded once at the CLI entry point and stored in ClaudeKitContext.
"""

import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path

import tomlkit

from claudekit.models.kits import validate_kit_type

DEFAULT_CONCURRENCY = 20

CONFIG_PATH_ENV = "CK_CONFIG_PATH"
GLOBAL_DIR_ENV = "CK_GLOBAL_DIR"
CONCURRENCY_ENV = "CK_CONCURRENCY"


@dataclass(frozen=True)
class GlobalConfig:
    """Immutable global configuration data.

    Attributes:
        default_kit: Kit used when `--kit` is not given
        concurrency: Max parallel file operations (checksums, ownership checks)
        global_dir: Target directory for `--global` installs
    """

    default_kit: str
    concurrency: int
    global_dir: Path

    @staticmethod
    def defaults() -> "GlobalConfig":
        return GlobalConfig(
            default_kit="engineer",
            concurrency=DEFAULT_CONCURRENCY,
            global_dir=Path.home() / ".claude",
        )


def global_config_path() -> Path:
    """Get the path to the global config file.

    Returns:
        Path to config file (for error messages and debugging)
    """
    override = os.environ.get(CONFIG_PATH_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".claudekit" / "config.toml"


def _parse_concurrency(value: object, source: str) -> int:
    try:
        concurrency = int(str(value))
    except ValueError:
        raise ValueError(f"Invalid concurrency {value!r} in {source}") from None
    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1 (got {concurrency} in {source})")
    return concurrency


def load_global_config(path: Path | None = None) -> GlobalConfig:
    """Load global config from ~/.claudekit/config.toml.

    A missing file yields defaults. Environment variables CK_GLOBAL_DIR and
    CK_CONCURRENCY override file values.

    Args:
        path: Config file path (defaults to global_config_path())

    Returns:
        GlobalConfig instance with loaded values

    Raises:
        ValueError: If the config is malformed or has invalid values
        UnknownKitError: If default_kit names an unknown kit
    """
    config_path = path if path is not None else global_config_path()
    config = GlobalConfig.defaults()

    if config_path.exists():
        try:
            data = tomllib.loads(config_path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Malformed config {config_path}: {e}") from e

        if "default_kit" in data:
            config = replace(config, default_kit=validate_kit_type(str(data["default_kit"])))
        if "concurrency" in data:
            config = replace(
                config, concurrency=_parse_concurrency(data["concurrency"], str(config_path))
            )
        if "global_dir" in data:
            config = replace(config, global_dir=Path(str(data["global_dir"])).expanduser())

    global_dir_override = os.environ.get(GLOBAL_DIR_ENV)
    if global_dir_override:
        config = replace(config, global_dir=Path(global_dir_override).expanduser())

    concurrency_override = os.environ.get(CONCURRENCY_ENV)
    if concurrency_override:
        config = replace(
            config, concurrency=_parse_concurrency(concurrency_override, CONCURRENCY_ENV)
        )

    return config


def save_global_config(config: GlobalConfig, path: Path | None = None) -> None:
    """Save global config, preserving comments and unknown keys already in the file.

    Args:
        config: GlobalConfig instance to save
        path: Config file path (defaults to global_config_path())
    """
    config_path = path if path is not None else global_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as f:
            doc = tomlkit.load(f)
    else:
        doc = tomlkit.document()
        doc.add(tomlkit.comment("Global claudekit configuration"))

    doc["default_kit"] = config.default_kit
    doc["concurrency"] = config.concurrency
    doc["global_dir"] = str(config.global_dir)

    with config_path.open("w", encoding="utf-8") as f:
        tomlkit.dump(doc, f)
