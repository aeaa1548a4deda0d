"""
Configuration management for mocap_rig.

Provides configuration classes for recording, playback and skinning, with
JSON load/save helpers.
"""

import json
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Any, Dict, Union

from ..core.constants import (
    DEFAULT_FRAME_RATE,
    DEFAULT_LOOPING,
    DEFAULT_MAX_DELTA_TIME,
    DEFAULT_MAX_JOINTS,
    DEFAULT_MIN_FRAME_INTERVAL,
    DEFAULT_MIN_PLAYBACK_SPEED,
    DEFAULT_PLAYBACK_SPEED,
    DEFAULT_SEPARATOR,
)


@dataclass
class RecorderConfig:
    """Configuration for clip capture."""
    frame_rate: float = DEFAULT_FRAME_RATE
    min_frame_interval: float = DEFAULT_MIN_FRAME_INTERVAL  # Frames closer than this are dropped


@dataclass
class PlaybackConfig:
    """Configuration for the playback controller."""
    speed: float = DEFAULT_PLAYBACK_SPEED
    min_speed: float = DEFAULT_MIN_PLAYBACK_SPEED
    looping: bool = DEFAULT_LOOPING
    reversed: bool = False
    max_delta_time: float = DEFAULT_MAX_DELTA_TIME  # Clamp on a single tick's delta


@dataclass
class SkinningConfig:
    """Configuration for skeleton building and the skinning buffer."""
    max_joints: int = DEFAULT_MAX_JOINTS
    separator: str = DEFAULT_SEPARATOR
    up_axis: str = 'y'


@dataclass
class Config:
    """
    Top-level configuration for mocap_rig.

    Attributes:
        recorder: Capture throttling and nominal frame rate
        playback: Speed, looping and direction defaults
        skinning: Skinning buffer capacity and joint path separator
        recordings_dir: Root directory of the recording store
        extra: Unknown keys preserved from a loaded file
    """

    recorder: RecorderConfig = field(default_factory=RecorderConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    skinning: SkinningConfig = field(default_factory=SkinningConfig)
    recordings_dir: str = 'recordings'

    # Additional fields
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'Config':
        """Create config from dictionary; unknown keys land in `extra`."""
        sections = {
            'recorder': RecorderConfig,
            'playback': PlaybackConfig,
            'skinning': SkinningConfig,
        }
        known_fields = {f.name for f in fields(cls)}

        kwargs = {}
        extra = dict(config_dict.get('extra', {}))
        for key, value in config_dict.items():
            if key == 'extra':
                continue
            if key not in known_fields:
                extra[key] = value
            elif key in sections and isinstance(value, dict):
                section_cls = sections[key]
                section_fields = {f.name for f in fields(section_cls)}
                kwargs[key] = section_cls(**{k: v for k, v in value.items() if k in section_fields})
            else:
                kwargs[key] = value

        config = cls(**kwargs)
        config.extra = extra
        return config

    def update(self, **kwargs) -> 'Config':
        """Return a new config with updated top-level values."""
        config_dict = self.to_dict()
        config_dict.update(kwargs)
        return Config.from_dict(config_dict)


def load_config(filepath: Union[str, Path]) -> Config:
    """
    Load configuration from JSON file.

    Args:
        filepath: Path to JSON config file

    Returns:
        Config object
    """
    filepath = Path(filepath)
    with open(filepath, 'r') as f:
        config_dict = json.load(f)
    return Config.from_dict(config_dict)


def save_config(config: Config, filepath: Union[str, Path]) -> None:
    """
    Save configuration to JSON file.

    Args:
        config: Config object to save
        filepath: Output file path
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, 'w') as f:
        json.dump(config.to_dict(), f, indent=2)
