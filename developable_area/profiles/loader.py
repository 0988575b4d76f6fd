"""YAML settings profile loading.

Provides functions to:
- List available profiles
- Load profiles from YAML files
- Merge overrides into profiles
"""

import logging
import os
from pathlib import Path

import yaml

from ..models.settings import EngineSettings

logger = logging.getLogger(__name__)

# Profiles ship inside the package for proper wheel packaging
PROFILES_DIR = Path(__file__).parent

PROFILE_ENV_VAR = "DEVAREA_PROFILE"


def default_profile_name() -> str:
    """Profile selected by the ``DEVAREA_PROFILE`` environment variable."""
    return os.environ.get(PROFILE_ENV_VAR) or "default"


def get_profile_path(name: str = "default") -> Path:
    """Get the path to a profile file.

    Args:
        name: Profile name (without .yaml extension)

    Returns:
        Path to the profile YAML file

    Raises:
        FileNotFoundError: If profile doesn't exist
    """
    path = PROFILES_DIR / f"{name}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"Profile '{name}' not found at {path}")
    return path


def list_profiles() -> list[dict[str, str]]:
    """List all available profiles.

    Returns:
        List of dicts with 'name' and 'description' keys
    """
    profiles = []

    for yaml_file in PROFILES_DIR.glob("*.yaml"):
        profiles.append({
            "name": yaml_file.stem,
            "description": _extract_description(yaml_file),
        })

    return sorted(profiles, key=lambda p: p["name"])


def _extract_description(yaml_path: Path) -> str:
    """Extract description from first comment line of YAML file."""
    try:
        with open(yaml_path) as f:
            first_line = f.readline().strip()
            if first_line.startswith("#"):
                return first_line.lstrip("#").strip()
    except OSError as e:
        logger.debug(f"Could not read {yaml_path}: {e}")
    return f"Settings from {yaml_path.name}"


def load_profile(
    name: str | None = None,
    override: dict | None = None,
) -> EngineSettings:
    """Load engine settings from a YAML profile with optional overrides.

    Args:
        name: Profile name (without .yaml extension); None selects the
            environment default
        override: Optional dict of values to override

    Returns:
        EngineSettings instance with merged overrides
    """
    name = name or default_profile_name()
    path = get_profile_path(name)

    with open(path) as f:
        yaml_content = f.read()

    settings = EngineSettings.from_yaml(yaml_content)

    if override:
        settings = settings.merge_override(override)
        logger.debug(f"Applied overrides to profile '{name}'")

    return settings
