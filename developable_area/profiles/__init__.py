"""Bundled engine settings profiles."""

from .loader import (
    PROFILE_ENV_VAR,
    default_profile_name,
    get_profile_path,
    list_profiles,
    load_profile,
)

__all__ = [
    "PROFILE_ENV_VAR",
    "default_profile_name",
    "get_profile_path",
    "list_profiles",
    "load_profile",
]
