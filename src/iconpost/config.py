"""
Configuration management for iconpost.

Loads YAML configuration with defaults for every pipeline stage. Request
parameters (tolerance, threshold, ...) are clamped per request; the values
here are the defaults and process-wide ceilings.
"""

import os
from dataclasses import asdict, dataclass, field
from typing import List, Optional

import yaml


@dataclass
class FetchConfig:
    """Configuration for downloading source images."""
    max_bytes: int = 12 * 1024 * 1024
    timeout_seconds: float = 20.0
    max_redirects: int = 3
    user_agent: str = "iconpost/1.0 (+https://local)"
    # hosts listed here skip the private-address checks
    allowed_hosts: List[str] = field(default_factory=list)


@dataclass
class MatteConfig:
    """Defaults for background removal."""
    max_size: int = 1024
    tolerance: float = 35.0
    hardness: float = 55.0
    feather: float = 2.5
    despeckle_rounds: int = 1
    despeckle_radius: int = 1
    samples_per_side: int = 256
    max_edge_samples: int = 5000
    min_ramp_gap: float = 5.0


@dataclass
class VectorizeConfig:
    """Defaults for bitmap tracing."""
    max_size: int = 1024
    palette_levels: int = 6
    color: str = "#000000"
    threshold: int = 128
    turd_size: int = 2
    curve_tolerance: float = 1.0
    corner_angle: float = 60.0
    max_fit_depth: int = 8


@dataclass
class TracingConfig:
    """Configuration for runtime tracing."""
    enabled: bool = False
    level: str = "INFO"
    file_path: Optional[str] = None
    json_output: bool = False


@dataclass
class DebugConfig:
    """Configuration for debug artifact generation."""
    enabled: bool = False
    out_dir: str = "debug"
    max_edge: int = 1600


@dataclass
class PipelineConfig:
    """Complete pipeline configuration."""
    fetch: FetchConfig = field(default_factory=FetchConfig)
    matte: MatteConfig = field(default_factory=MatteConfig)
    vectorize: VectorizeConfig = field(default_factory=VectorizeConfig)
    tracing: TracingConfig = field(default_factory=TracingConfig)
    debug: DebugConfig = field(default_factory=DebugConfig)


_SECTIONS = ("fetch", "matte", "vectorize", "tracing", "debug")


def load_config(config_path=None):
    """
    Load configuration from YAML file.

    Falls back to defaults for any missing values; unknown keys are ignored.
    """
    config = PipelineConfig()

    if config_path and os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f) or {}

        config = _merge_config(config, yaml_data)

    return config


def _merge_config(config, yaml_data):
    """Merge YAML data into config dataclass."""
    for section_name in _SECTIONS:
        values = yaml_data.get(section_name)
        if not isinstance(values, dict):
            continue
        section = getattr(config, section_name)
        for key, value in values.items():
            if hasattr(section, key):
                setattr(section, key, value)

    return config


def save_default_config(path):
    """Save default configuration to YAML file for reference."""
    yaml_data = asdict(PipelineConfig())

    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(yaml_data, f, default_flow_style=False, sort_keys=False)
