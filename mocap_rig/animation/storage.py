"""
Clip persistence.

Clips are stored as self-describing JSON records:

    {
        "version": 1,
        "name": "take_1",
        "duration": 2.5,
        "frame_rate": 30.0,
        "recording_date": "2025-02-14T10:00:00",
        "frames": [
            {"id": 0, "timestamp": 0.0, "joints": [
                {"id": 0, "name": "hips_joint", "path": "root/hips_joint",
                 "parent_index": 0,
                 "bind_transform": {"columns": [[...], [...], [...], [...]]},
                 "rest_transform": {"columns": ...},
                 "transform": {"columns": ...}},
                ...
            ]},
            ...
        ]
    }

Matrices are written column by column. A joint record without "transform"
was not tracked in that frame; it loads as absent with its bind pose.
"""

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Union

import numpy as np
import torch

from ..core.constants import CLIP_FILE_SUFFIX, CLIP_FORMAT_VERSION, DEFAULT_FRAME_RATE, RECORDINGS_DIRNAME
from ..core.exceptions import ClipFormatError
from ..utils.config import Config
from .clip import AnimationClip, ClipFrame, ClipJoint

logger = logging.getLogger(__name__)


# =============================================================================
# Matrix Codec
# =============================================================================

def matrix_to_record(M: torch.Tensor) -> Dict[str, List[List[float]]]:
    """{"columns": [c0, c1, c2, c3]} for a (4, 4) transform."""
    return {'columns': M.detach().cpu().double().T.tolist()}


def matrix_from_record(record: Any) -> torch.Tensor:
    """
    Decode a {"columns": ...} record.

    Raises:
        ClipFormatError: If the record is not four columns of four numbers
    """
    try:
        columns = np.asarray(record['columns'], dtype=np.float64)
    except (KeyError, TypeError, ValueError) as e:
        raise ClipFormatError(f"Invalid matrix record: {e}") from e
    if columns.shape != (4, 4):
        raise ClipFormatError(f"Matrix record should hold 4 columns of 4, got shape {columns.shape}")
    return torch.from_numpy(columns.T.copy()).float()


# =============================================================================
# Clip Codec
# =============================================================================

def clip_to_dict(clip: AnimationClip) -> Dict[str, Any]:
    """
    Convert a clip to its JSON record.

    Raises:
        ClipFormatError: If the clip has no frames
    """
    if clip.is_empty:
        raise ClipFormatError(f"Cannot serialize clip '{clip.name}' without frames")

    joint_templates = [
        {
            'id': joint.index,
            'name': joint.name,
            'path': joint.path,
            'parent_index': joint.parent_index,
            'bind_transform': matrix_to_record(joint.bind_transform),
            'rest_transform': matrix_to_record(joint.rest_transform),
        }
        for joint in clip.joints
    ]

    frames = []
    for frame in clip.frames:
        joints = []
        for k, template in enumerate(joint_templates):
            record = dict(template)
            if bool(frame.present[k]):
                record['transform'] = matrix_to_record(frame.transforms[k])
            joints.append(record)
        frames.append({'id': frame.frame_id, 'timestamp': frame.timestamp, 'joints': joints})

    return {
        'version': CLIP_FORMAT_VERSION,
        'name': clip.name,
        'duration': clip.duration,
        'frame_rate': clip.frame_rate,
        'recording_date': clip.created_at.isoformat(),
        'frames': frames,
    }


def _joint_from_record(record: Dict[str, Any]) -> ClipJoint:
    parent = record.get('parent_index')
    return ClipJoint(
        index=int(record['id']),
        name=str(record['name']),
        path=str(record.get('path', '')),
        bind_transform=matrix_from_record(record['bind_transform']),
        rest_transform=matrix_from_record(record['rest_transform']),
        parent_index=None if parent is None or parent < 0 else int(parent),
    )


def clip_from_dict(record: Dict[str, Any]) -> AnimationClip:
    """
    Build a clip from its JSON record.

    The first frame's joint records define the track layout.

    Raises:
        ClipFormatError: Missing fields, an empty frame list, or frames
            with differing joint counts
    """
    try:
        frame_records = record['frames']
        name = str(record['name'])
    except (KeyError, TypeError) as e:
        raise ClipFormatError(f"Clip record is missing {e}") from e

    if not isinstance(frame_records, list) or not frame_records:
        raise ClipFormatError(f"Clip '{name}' has no frames")

    try:
        joints = [_joint_from_record(j) for j in frame_records[0]['joints']]
        track_count = len(joints)

        frames = []
        for frame_record in frame_records:
            joint_records = frame_record['joints']
            if len(joint_records) != track_count:
                raise ClipFormatError(
                    f"Frame {frame_record.get('id')} of clip '{name}' has "
                    f"{len(joint_records)} joints, expected {track_count}"
                )

            transforms = []
            present = []
            for joint, joint_record in zip(joints, joint_records):
                if 'transform' in joint_record:
                    transforms.append(matrix_from_record(joint_record['transform']))
                    present.append(True)
                else:
                    bind = joint_record.get('bind_transform')
                    transforms.append(matrix_from_record(bind) if bind is not None else joint.bind_transform)
                    present.append(False)

            frames.append(ClipFrame(
                frame_id=int(frame_record.get('id', len(frames))),
                timestamp=float(frame_record['timestamp']),
                transforms=torch.stack(transforms) if transforms else torch.zeros(0, 4, 4),
                present=torch.tensor(present, dtype=torch.bool),
            ))

        recording_date = record.get('recording_date')
        created_at = datetime.fromisoformat(recording_date) if recording_date else None

        return AnimationClip(
            name=name,
            joints=joints,
            frames=frames,
            duration=float(record['duration']) if 'duration' in record else None,
            frame_rate=float(record.get('frame_rate', DEFAULT_FRAME_RATE)),
            created_at=created_at,
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ClipFormatError(f"Malformed clip record '{name}': {e}") from e


def save_clip(clip: AnimationClip, filepath: Union[str, Path]) -> Path:
    """Write a clip record to a JSON file."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    record = clip_to_dict(clip)
    with open(filepath, 'w') as f:
        json.dump(record, f)
    logger.info(f"Saved clip '{clip.name}' to {filepath}")
    return filepath


def load_clip(filepath: Union[str, Path]) -> AnimationClip:
    """
    Read a clip record from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        ClipFormatError: If the file is not a valid clip record
    """
    filepath = Path(filepath)
    with open(filepath, 'r') as f:
        try:
            record = json.load(f)
        except json.JSONDecodeError as e:
            raise ClipFormatError(f"{filepath} is not valid JSON: {e}") from e
    return clip_from_dict(record)


# =============================================================================
# Recording Store
# =============================================================================

class RecordingStore:
    """
    Directory of saved clips, one <name>.json per clip under recordings/.

    Example:
        >>> store = RecordingStore('~/mocap')
        >>> store.save(clip)
        >>> store.list()
        ['take_1']
    """

    def __init__(self, root: Union[str, Path], dirname: str = RECORDINGS_DIRNAME):
        self.root = Path(root).expanduser()
        self.directory = self.root / dirname

    @classmethod
    def from_config(cls, config: Config) -> 'RecordingStore':
        """Store whose clip directory is Config.recordings_dir."""
        directory = Path(config.recordings_dir).expanduser()
        return cls(directory.parent, dirname=directory.name)

    @staticmethod
    def filename_for(name: str) -> str:
        """File name for a clip name; path separators and odd characters become '_'."""
        stem = re.sub(r'[^A-Za-z0-9._-]+', '_', name).strip('.') or 'clip'
        return stem + CLIP_FILE_SUFFIX

    def path_for(self, name: str) -> Path:
        return self.directory / self.filename_for(name)

    def save(self, clip: AnimationClip) -> Path:
        """Save a clip, replacing any clip stored under the same name."""
        return save_clip(clip, self.path_for(clip.name))

    def list(self) -> List[str]:
        """Stems of stored clip files, sorted."""
        if not self.directory.is_dir():
            return []
        return sorted(p.stem for p in self.directory.glob(f'*{CLIP_FILE_SUFFIX}'))

    def load(self, name: str) -> AnimationClip:
        """
        Load one clip by name.

        Raises:
            FileNotFoundError: If no clip is stored under that name
            ClipFormatError: If the stored file is corrupt
        """
        return load_clip(self.path_for(name))

    def load_all(self) -> List[AnimationClip]:
        """Load every stored clip; corrupt files are logged and skipped."""
        clips = []
        for stem in self.list():
            path = self.directory / (stem + CLIP_FILE_SUFFIX)
            try:
                clips.append(load_clip(path))
            except (ClipFormatError, OSError) as e:
                logger.error(f"Skipping unreadable recording {path}: {e}")
        return clips

    def delete(self, name: str) -> bool:
        """Remove a stored clip; returns False if it did not exist."""
        path = self.path_for(name)
        if not path.exists():
            return False
        path.unlink()
        logger.info(f"Deleted recording {path}")
        return True

    def __contains__(self, name: str) -> bool:
        return self.path_for(name).exists()

    def __len__(self) -> int:
        return len(self.list())
