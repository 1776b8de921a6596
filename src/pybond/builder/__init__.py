"""
Builder module for setting up compound bond forces from configuration.

Provides:
- load_yaml: read a YAML configuration file
- build_force_from_config: CustomCompoundBondForce from a config dict
- build_context_from_config / load_context: built Context from config
"""

from .config_loader import (
    build_context_from_config,
    build_force_from_config,
    load_context,
    load_yaml,
)

__all__ = [
    "load_yaml",
    "build_force_from_config",
    "build_context_from_config",
    "load_context",
]
