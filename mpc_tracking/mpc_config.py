"""
MPC configuration loader.

Loads config/mpc.yaml and builds a validated MPCConfig. Falls back to the
MPCConfig defaults if the file is missing.

Presets (config/presets/<name>.yaml) provide named tunings that override
mpc.yaml. Use load_preset() to load a preset.

Usage:
    from mpc_tracking.mpc_config import load_mpc_config, load_preset
    config = load_mpc_config()
    print(config.horizon)  # 10

    # Low-speed tuning with a tighter CPU time limit
    config = load_preset('low_speed', max_cpu_time=0.1)
"""

import logging
import math
import os
import yaml

from mpc_tracking.mpc_core.controller import MPCConfig
from mpc_tracking.mpc_core.errors import InvalidInputError

logger = logging.getLogger(__name__)

CONFIG_DIR_ENV = 'MPC_TRACKING_CONFIG_DIR'

# YAML section -> MPCConfig fields it may set
_SECTIONS = {
    'prediction': ('horizon', 'dt'),
    'vehicle': ('lf', 'max_steering', 'max_steering_deg', 'max_acceleration'),
    'reference': ('reference_velocity',),
    'cost': (
        'cte_weight', 'epsi_weight', 'velocity_weight', 'steering_weight',
        'acceleration_weight', 'steering_rate_weight', 'acceleration_rate_weight',
    ),
    'solver': ('max_cpu_time', 'print_level', 'solver_options'),
}


def load_mpc_config(config_path=None, **overrides):
    """Load MPC configuration from YAML.

    Args:
        config_path: Path to mpc.yaml. If None, searches:
            1. $MPC_TRACKING_CONFIG_DIR
            2. Package config/ directory
        **overrides: MPCConfig field values applied last.

    Returns:
        MPCConfig built from defaults, file values and overrides.

    Raises:
        InvalidInputError: unknown section/key or out-of-range value.
    """
    if config_path is None:
        config_path = _find_config_file('mpc.yaml')

    values = _read_sections(config_path)
    values.update(_check_overrides(overrides))
    return MPCConfig(**values)


def load_preset(preset_name, **overrides):
    """Load a named preset from config/presets/<name>.yaml.

    The preset is applied over mpc.yaml, then overrides over the preset.

    Args:
        preset_name: Name of the preset (without .yaml extension).
            Available presets: see list_presets()

    Returns:
        MPCConfig, or None if the preset is not found.
    """
    preset_path = _find_preset_file(preset_name)
    if preset_path is None:
        return None

    values = _read_sections(_find_config_file('mpc.yaml'))
    values.update(_read_sections(preset_path))
    values.update(_check_overrides(overrides))
    return MPCConfig(**values)


def list_presets():
    """List available preset names.

    Returns:
        list of preset name strings (without .yaml extension).
    """
    presets = []
    for search_dir in _preset_search_dirs():
        if os.path.isdir(search_dir):
            for fname in sorted(os.listdir(search_dir)):
                if fname.endswith('.yaml'):
                    presets.append(fname[:-5])
    return sorted(set(presets))


def _read_sections(config_path):
    """Flatten a sectioned YAML file into MPCConfig keyword arguments."""
    if config_path is None or not os.path.isfile(config_path):
        return {}

    try:
        with open(config_path, 'r') as f:
            file_config = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.warning("Ignoring unparsable config %s: %s", config_path, e)
        return {}

    if not isinstance(file_config, dict):
        raise InvalidInputError(f"{config_path}: top level must be a mapping")

    values = {}
    for section, entries in file_config.items():
        if section not in _SECTIONS:
            raise InvalidInputError(
                f"{config_path}: unknown section '{section}' "
                f"(expected one of {sorted(_SECTIONS)})")
        if not isinstance(entries, dict):
            raise InvalidInputError(f"{config_path}: section '{section}' must be a mapping")
        for key, value in entries.items():
            if key not in _SECTIONS[section]:
                raise InvalidInputError(
                    f"{config_path}: unknown key '{key}' in section '{section}'")
            if key == 'max_steering_deg':
                values['max_steering'] = math.radians(value)
            else:
                values[key] = value
    logger.debug("Loaded %d MPC settings from %s", len(values), config_path)
    return values


def _check_overrides(overrides):
    known = set(MPCConfig.field_names())
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise InvalidInputError(f"Unknown MPC config fields: {unknown}")
    return dict(overrides)


def _config_search_dirs():
    dirs = []
    # 1. Deployment override
    env_dir = os.environ.get(CONFIG_DIR_ENV)
    if env_dir:
        dirs.append(env_dir)
    # 2. Package data
    dirs.append(os.path.join(os.path.dirname(os.path.abspath(__file__)), 'config'))
    return dirs


def _find_config_file(filename):
    """Search for a config file in standard locations."""
    for search_dir in _config_search_dirs():
        candidate = os.path.join(search_dir, filename)
        if os.path.isfile(candidate):
            return candidate
    return None


def _preset_search_dirs():
    """Return directories to search for presets."""
    return [os.path.join(d, 'presets') for d in _config_search_dirs()]


def _find_preset_file(preset_name):
    """Search for a preset YAML file by name."""
    filename = f'{preset_name}.yaml'
    for search_dir in _preset_search_dirs():
        candidate = os.path.join(search_dir, filename)
        if os.path.isfile(candidate):
            return candidate
    return None
