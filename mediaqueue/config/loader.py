import yaml
from pathlib import Path
from .models import AppConfig

def load_config(config_path: Path) -> AppConfig:
    """Loads YAML config and parses it into AppConfig Pydantic model."""
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    # Top-level 'encoder_settings' is shorthand for encoder.settings
    encoder_settings = data.pop("encoder_settings", None)
    if encoder_settings is not None:
        data.setdefault("encoder", {})["settings"] = encoder_settings

    return AppConfig(**data)
