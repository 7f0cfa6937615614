import copy
import os
import yaml
from typing import Any, Dict, Optional

DEFAULT_CONFIG_PATH: str = os.path.join(os.path.dirname(os.path.abspath(__file__)), "../configs/default.yaml")
REQUIRED_SECTIONS = ("allometry", "pruning", "growth", "linear_growth", "diff")

def load_or_update_config(new_config_path: Optional[str] = None, current_config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    if new_config_path is None:
        new_config_path = DEFAULT_CONFIG_PATH
    new_config: Dict[str, Any] = copy.deepcopy(current_config) if current_config else {}
    with open(new_config_path, "r", encoding="utf-8") as f:
        config: Optional[Dict[str, Any]] = yaml.safe_load(f)
    if config is None:
        config = {}
    if not isinstance(config, dict):
        raise ValueError(f"Config file {new_config_path} must contain a mapping.")
    for section, values in config.items():
        if isinstance(values, dict) and isinstance(new_config.get(section), dict):
            new_config[section].update(values)
        else:
            new_config[section] = values
    # Check
    for section in REQUIRED_SECTIONS:
        if section not in new_config:
            raise KeyError(f"Missing config section '{section}' after loading {new_config_path}.")
    return new_config

def load_default_config() -> Dict[str, Any]:
    return load_or_update_config(DEFAULT_CONFIG_PATH)
