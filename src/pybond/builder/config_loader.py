"""
Configuration loader for YAML-based force setup.

Provides functions to build a CustomCompoundBondForce and a Context from
a configuration dictionary or YAML file.
"""
import logging
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np
import yaml

from pybond.core import Context
from pybond.core.schemas import BondInfo, FunctionInfo
from pybond.force import CustomCompoundBondForce

logger = logging.getLogger(__name__)


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load YAML configuration file.

    Args:
        path: Path to YAML file.

    Returns:
        Dictionary with configuration.
    """
    with open(path, "r") as f:
        return yaml.safe_load(f)


def _parse_global_parameters(force: CustomCompoundBondForce, config: Any) -> None:
    """Accept either a {name: default} mapping or a list of records."""
    if isinstance(config, dict):
        for name, default in config.items():
            force.add_global_parameter(str(name), float(default))
    else:
        for entry in config:
            force.add_global_parameter(
                str(entry["name"]), float(entry.get("default", 0.0))
            )


def build_force_from_config(config: Dict[str, Any]) -> CustomCompoundBondForce:
    """
    Build a force definition from the 'force' section of a configuration.

    Args:
        config: Configuration dictionary (typically from YAML).

    Returns:
        Force definition with parameters, functions and bonds added.

    Example config:
        force:
          particles_per_bond: 3
          energy: "0.5*k*(angle(p1,p2,p3)-theta0)^2"
          per_bond_parameters: [k, theta0]
          global_parameters:
            scale: 1.0
          functions:
            - name: f
              values: [0.0, 1.0, 4.0]
              min: 0.0
              max: 2.0
          bonds:
            - particles: [0, 1, 2]
              parameters: [100.0, 1.91]
    """
    force_config = config.get("force", config)
    if "energy" not in force_config:
        raise ValueError("Force configuration needs an 'energy' expression")
    if "particles_per_bond" not in force_config:
        raise ValueError("Force configuration needs 'particles_per_bond'")

    force = CustomCompoundBondForce(
        int(force_config["particles_per_bond"]), str(force_config["energy"])
    )
    for name in force_config.get("per_bond_parameters", []):
        force.add_per_bond_parameter(str(name))
    _parse_global_parameters(force, force_config.get("global_parameters", {}))

    for entry in force_config.get("functions", []):
        info = FunctionInfo.from_dict(entry)
        force.add_function(info.name, info.values, info.min, info.max)

    for entry in force_config.get("bonds", []):
        bond = BondInfo.from_dict(entry)
        force.add_bond(bond.particles, bond.parameters)

    logger.debug("Loaded %s with %d bond(s)", force.get_name(), force.num_bonds)
    return force


def build_context_from_config(config: Dict[str, Any]) -> Context:
    """
    Build a force and bind it to positions.

    The 'context' section holds positions, optional num_workers and
    chunk_size, and optional live values of global parameters.

    Args:
        config: Configuration dictionary (typically from YAML).

    Returns:
        Built Context.
    """
    force = build_force_from_config(config)

    ctx_config = config.get("context", {})
    if "positions" not in ctx_config:
        raise ValueError("Context configuration needs 'positions'")
    positions = np.array(ctx_config["positions"], dtype=float)

    context = Context(
        force,
        positions,
        num_workers=int(ctx_config.get("num_workers", 1)),
        chunk_size=int(ctx_config.get("chunk_size", 4096)),
    )
    for name, value in ctx_config.get("parameters", {}).items():
        context.set_parameter(str(name), float(value))
    return context


def load_context(path: Union[str, Path]) -> Context:
    """
    Load configuration from YAML and build a context.

    Args:
        path: Path to YAML configuration file.

    Returns:
        Built Context, ready for compute_forces_and_energy().
    """
    return build_context_from_config(load_yaml(path))
