"""YAML family file loader, writer and data directory discovery."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

import yaml

from . import constants
from .schema import FamilyHistory, GlobalConfig, RecurrenceFamily

logger = logging.getLogger(__name__)


def find_data_directory() -> Optional[Path]:
    """
    Locate the recurring families data directory.

    Search order (highest to lowest priority):
    1. RECURBOOK_DIR environment variable
    2. recurring/ directory in current directory

    Returns:
        Path to the directory, or None if not found
    """
    if env_dir := os.getenv(constants.ENV_DATA_DIR):
        path = Path(env_dir)
        if path.is_dir():
            return path
        logger.warning("RECURBOOK_DIR points to non-existent directory: %s", env_dir)

    cwd_dir = Path.cwd() / constants.DEFAULT_DATA_DIR
    if cwd_dir.is_dir():
        return cwd_dir

    return None


def family_filename(family_id: int) -> str:
    """Return the file name a family is stored under."""
    return f"{constants.FAMILY_FILE_PREFIX}{family_id}.yaml"


def load_config(dirpath: Path) -> GlobalConfig:
    """
    Load _config.yaml from a data directory.

    Missing or invalid config files fall back to defaults with a warning.
    """
    config_path = dirpath / constants.CONFIG_FILENAME
    if not config_path.is_file():
        return GlobalConfig()

    try:
        with config_path.open() as f:
            config_data = yaml.safe_load(f)

        if config_data is not None:
            logger.debug("Loaded global config from: %s", config_path)
            return GlobalConfig(**config_data)
    except (yaml.YAMLError, ValueError, TypeError) as e:
        logger.warning("Failed to load config from '%s', using defaults: %s", config_path, e)

    return GlobalConfig()


def load_family_from_file(filepath: Path) -> Optional[RecurrenceFamily]:
    """
    Load a single family from its YAML file.

    Args:
        filepath: Path to a family-<id>.yaml file

    Returns:
        RecurrenceFamily or None if the file is invalid

    Note:
        Errors are logged but not raised - allows directory loading to continue
    """
    try:
        with filepath.open() as f:
            data = yaml.safe_load(f)

        if data is None:
            logger.warning("Empty family file: %s", filepath)
            return None

        family = RecurrenceFamily(**data)

        expected_filename = family_filename(family.id)
        if filepath.name != expected_filename:
            logger.error(
                "Failed to load family from '%s':\n"
                "  Family id %d does not match filename.\n"
                "  Expected: '%s'\n"
                "  Found: '%s'",
                filepath,
                family.id,
                expected_filename,
                filepath.name,
            )
            return None

        return family

    except yaml.YAMLError as e:
        logger.error("YAML parsing error in '%s': %s", filepath, e)
        return None
    except (ValueError, TypeError) as e:
        logger.error("Invalid family data in '%s': %s", filepath, e)
        return None


def load_families_from_directory(dirpath: Path) -> list[RecurrenceFamily]:
    """
    Load all families from a data directory.

    Directory structure:
        recurring/
        ├── _config.yaml           # Global config (optional)
        ├── family-1.yaml          # One file per family
        ├── family-2.yaml
        └── history/
            └── family-7.yaml      # Instances kept after family 7 was deleted

    Args:
        dirpath: Path to the data directory

    Returns:
        Families sorted by id; invalid or misnamed files are skipped
    """
    logger.debug("Loading families from directory: %s", dirpath)

    families = []
    for family_path in sorted(dirpath.glob(constants.FAMILY_FILE_PATTERN)):
        family = load_family_from_file(family_path)
        if family is not None:
            families.append(family)

    families.sort(key=lambda f: f.id)
    logger.debug(
        "Loaded %d families (%d active) from directory: %s",
        len(families),
        sum(1 for f in families if f.is_active),
        dirpath,
    )
    return families


def load_histories_from_directory(dirpath: Path) -> list[FamilyHistory]:
    """Load retained histories of deleted families from history/."""
    history_dir = dirpath / constants.HISTORY_DIRNAME
    if not history_dir.is_dir():
        return []

    histories = []
    for history_path in sorted(history_dir.glob(constants.FAMILY_FILE_PATTERN)):
        try:
            with history_path.open() as f:
                data = yaml.safe_load(f)
            if data is not None:
                histories.append(FamilyHistory(**data))
        except (yaml.YAMLError, ValueError, TypeError) as e:
            logger.error("Invalid history data in '%s': %s", history_path, e)

    return histories


def _to_yaml_data(model: Any) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


def _write_yaml(path: Path, data: dict[str, Any]) -> None:
    """
    Write YAML through a temp file in the same directory, then rename it over path.

    Readers see either the old file or the new one, never a partial write. Temp
    names start with a dot so FAMILY_FILE_PATTERN never matches them.
    """
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            yaml.safe_dump(data, f, sort_keys=False)
        os.replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)


def save_family_file(dirpath: Path, family: RecurrenceFamily) -> Path:
    """Write a family to family-<id>.yaml and return the path."""
    dirpath.mkdir(parents=True, exist_ok=True)
    path = dirpath / family_filename(family.id)
    _write_yaml(path, _to_yaml_data(family))
    logger.debug("Saved family %d to %s", family.id, path)
    return path


def remove_family_file(dirpath: Path, family_id: int) -> None:
    """Remove a family file if it exists."""
    path = dirpath / family_filename(family_id)
    if path.is_file():
        path.unlink()
        logger.debug("Removed family file %s", path)


def save_history_file(dirpath: Path, history: FamilyHistory) -> Path:
    """Write a deleted family's retained instances under history/."""
    history_dir = dirpath / constants.HISTORY_DIRNAME
    history_dir.mkdir(parents=True, exist_ok=True)
    path = history_dir / family_filename(history.family_id)
    _write_yaml(path, _to_yaml_data(history))
    logger.debug("Saved history of family %d to %s", history.family_id, path)
    return path


def write_default_config(dirpath: Path) -> Path:
    """Write a _config.yaml holding the default settings."""
    dirpath.mkdir(parents=True, exist_ok=True)
    path = dirpath / constants.CONFIG_FILENAME
    _write_yaml(path, GlobalConfig().model_dump(mode="json"))
    return path
