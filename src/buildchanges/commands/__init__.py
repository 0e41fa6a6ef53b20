"""CLI command implementations for buildchanges.

This package contains the implementation of each CLI command,
separated from the CLI framework setup in cli.py.
"""

from .init import init
from .manifest import build_resolver, load_mapping_cache, load_settings, manifest
from .mapping import mapping_app, mapping_build

__all__ = [
    "build_resolver",
    "init",
    "load_mapping_cache",
    "load_settings",
    "manifest",
    "mapping_app",
    "mapping_build",
]
