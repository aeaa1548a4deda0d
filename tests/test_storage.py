"""
Tests for clip persistence.
"""

import json
import logging

import pytest
import torch

from mocap_rig.animation.storage import (
    RecordingStore,
    clip_from_dict,
    clip_to_dict,
    load_clip,
    matrix_from_record,
    matrix_to_record,
    save_clip,
)
from mocap_rig.core.exceptions import ClipFormatError
from mocap_rig.utils.config import Config
from mocap_rig.utils.transforms import identity_transforms, rotation_matrix_degrees, translation_matrix


@pytest.fixture
def sample_clip(clip_factory):
    """Two-joint, three-frame clip with one untracked entry."""
    frames = []
    for i in range(3):
        transforms = identity_transforms(2)
        transforms[0] = translation_matrix([0.1 * i, 0.0, 0.0])
        transforms[1] = rotation_matrix_degrees([0.0, 1.0, 0.0], 10.0 * i)
        frames.append(transforms)
    present = [
        torch.tensor([True, True]),
        torch.tensor([True, False]),
        torch.tensor([True, True]),
    ]
    return clip_factory(frames, 1.0, paths=['hips', 'hips/spine'], name='take_1', present=present)


class TestMatrixRecord:
    """Tests for the column-major matrix record."""

    def test_columns(self):
        """The fourth column carries the translation."""
        record = matrix_to_record(translation_matrix([1.0, 2.0, 3.0]))
        assert record['columns'][3] == [1.0, 2.0, 3.0, 1.0]

    def test_decode(self):
        """Decoding restores the matrix."""
        M = rotation_matrix_degrees([1.0, 0.0, 0.0], 45.0) @ translation_matrix([0.0, 1.0, 0.0])
        assert torch.allclose(matrix_from_record(matrix_to_record(M)), M, atol=1e-6)

    def test_bad_shape(self):
        """Records that are not 4x4 are rejected."""
        with pytest.raises(ClipFormatError):
            matrix_from_record({'columns': [[1.0, 0.0, 0.0]]})
        with pytest.raises(ClipFormatError):
            matrix_from_record({'rows': []})


class TestClipRecord:
    """Tests for clip_to_dict / clip_from_dict."""

    def test_round_trip(self, sample_clip):
        """A saved and reloaded clip has the same frames and metadata."""
        loaded = clip_from_dict(json.loads(json.dumps(clip_to_dict(sample_clip))))
        assert loaded.name == 'take_1'
        assert loaded.duration == pytest.approx(1.0)
        assert loaded.frame_count == 3
        assert loaded.joint_paths == ['hips', 'hips/spine']
        assert loaded.joints[1].parent_index == 0
        assert torch.equal(loaded.present, sample_clip.present)
        assert torch.allclose(loaded.transforms[2], sample_clip.transforms[2], atol=1e-6)
        assert loaded.created_at == sample_clip.created_at

    def test_absent_joint_has_no_transform(self, sample_clip):
        """Untracked entries are written without a transform."""
        record = clip_to_dict(sample_clip)
        assert 'transform' not in record['frames'][1]['joints'][1]
        assert 'transform' in record['frames'][1]['joints'][0]

    def test_absent_joint_loads_as_bind(self, sample_clip):
        """A missing transform loads as absent with the bind pose."""
        loaded = clip_from_dict(clip_to_dict(sample_clip))
        assert not bool(loaded.present[1, 1])
        assert torch.allclose(loaded.transforms[1, 1], loaded.bind_transforms[1])

    def test_empty_clip_not_serialized(self, clip_factory):
        """Clips without frames cannot be saved."""
        empty = clip_factory([], 0.0, paths=['hips'])
        with pytest.raises(ClipFormatError):
            clip_to_dict(empty)

    def test_empty_frames_rejected(self, sample_clip):
        """A record with no frames is rejected."""
        record = clip_to_dict(sample_clip)
        record['frames'] = []
        with pytest.raises(ClipFormatError):
            clip_from_dict(record)

    def test_inconsistent_joint_counts_rejected(self, sample_clip):
        """Every frame must carry the same number of joints."""
        record = clip_to_dict(sample_clip)
        record['frames'][2]['joints'].pop()
        with pytest.raises(ClipFormatError):
            clip_from_dict(record)

    def test_missing_fields_rejected(self):
        """Records without the required keys are rejected."""
        with pytest.raises(ClipFormatError):
            clip_from_dict({'name': 'x'})


class TestFiles:
    """Tests for save_clip / load_clip."""

    def test_save_and_load(self, sample_clip, tmp_path):
        """Clips survive a trip through a file."""
        path = save_clip(sample_clip, tmp_path / 'nested' / 'take.json')
        assert path.exists()
        loaded = load_clip(path)
        assert torch.allclose(loaded.transforms[0], sample_clip.transforms[0], atol=1e-6)
        assert torch.allclose(loaded.timestamps, sample_clip.timestamps)

    def test_invalid_json(self, tmp_path):
        """Files that are not JSON raise ClipFormatError."""
        path = tmp_path / 'broken.json'
        path.write_text('{not json')
        with pytest.raises(ClipFormatError):
            load_clip(path)


class TestRecordingStore:
    """Tests for the on-disk recording directory."""

    def test_save_list_load(self, sample_clip, tmp_path):
        """Saved clips are listed and loadable by name."""
        store = RecordingStore(tmp_path)
        path = store.save(sample_clip)
        assert path.parent == tmp_path / 'recordings'
        assert store.list() == ['take_1']
        assert 'take_1' in store
        assert len(store) == 1
        assert store.load('take_1').frame_count == 3

    def test_empty_store(self, tmp_path):
        """A store without a directory lists nothing."""
        store = RecordingStore(tmp_path)
        assert store.list() == []
        assert store.load_all() == []

    def test_filename_sanitized(self):
        """Path separators in clip names do not escape the directory."""
        assert RecordingStore.filename_for('../a/b c') == '_a_b_c.json'

    def test_load_all_skips_corrupt(self, sample_clip, tmp_path, caplog):
        """Corrupt files are logged and skipped."""
        store = RecordingStore(tmp_path)
        store.save(sample_clip)
        (store.directory / 'broken.json').write_text('[]')
        with caplog.at_level(logging.ERROR):
            clips = store.load_all()
        assert [clip.name for clip in clips] == ['take_1']
        assert 'broken.json' in caplog.text

    def test_delete(self, sample_clip, tmp_path):
        """Deleting removes the file once."""
        store = RecordingStore(tmp_path)
        store.save(sample_clip)
        assert store.delete('take_1')
        assert not store.delete('take_1')
        assert 'take_1' not in store

    def test_load_missing(self, tmp_path):
        """Loading an unknown name raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            RecordingStore(tmp_path).load('nothing')

    def test_from_config(self, sample_clip, tmp_path):
        """Config.recordings_dir is the directory the clip files land in."""
        config = Config(recordings_dir=str(tmp_path / 'takes'))
        store = RecordingStore.from_config(config)
        path = store.save(sample_clip)
        assert path == tmp_path / 'takes' / 'take_1.json'
        assert store.list() == ['take_1']
