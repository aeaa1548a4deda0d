"""
Tests for recording capture frames into clips.
"""

import threading

import pytest
import torch

from mocap_rig.animation.recorder import CaptureFrame, ClipRecorder
from mocap_rig.core.exceptions import RecordingError
from mocap_rig.utils.config import RecorderConfig
from mocap_rig.utils.transforms import identity_transforms, translation_matrix


NAMES = ['root', 'hips_joint', 'spine_1_joint']
PARENTS = [-1, 0, 1]


def capture(timestamp, offset=0.0, present=None):
    """Capture frame whose hips sit at x=offset."""
    transforms = identity_transforms(3)
    transforms[1] = translation_matrix([offset, 1.0, 0.0])
    return CaptureFrame(timestamp, transforms, PARENTS, NAMES, present)


class TestRecording:
    """Tests for frame accumulation."""

    def test_timestamps_rebased(self):
        """Clip time starts at the first kept frame."""
        recorder = ClipRecorder('take')
        recorder.append(capture(100.0))
        recorder.append(capture(100.5))
        clip = recorder.finish()
        assert clip.timestamps.tolist() == pytest.approx([0.0, 0.5])
        assert clip.duration == pytest.approx(0.5)

    def test_throttling(self):
        """Frames within the minimum interval of the last kept frame are dropped."""
        recorder = ClipRecorder('take')
        assert recorder.append(capture(0.0))
        assert not recorder.append(capture(0.016))
        assert not recorder.append(capture(0.033))
        assert recorder.append(capture(0.05))
        assert recorder.frame_count == 2
        assert recorder.dropped_count == 2

    def test_custom_interval(self):
        """The throttle interval comes from RecorderConfig."""
        recorder = ClipRecorder('take', config=RecorderConfig(min_frame_interval=0.0))
        recorder.append(capture(0.0))
        assert recorder.append(capture(0.001))

    def test_layout_from_first_frame(self):
        """Names, parents and paths come from the first frame."""
        recorder = ClipRecorder('take')
        recorder.append(capture(0.0, offset=0.25))
        clip = recorder.finish()
        assert clip.joint_paths == ['root', 'root/hips_joint', 'root/hips_joint/spine_1_joint']
        assert clip.joints[0].parent_index is None
        assert clip.joints[2].parent_index == 1
        assert torch.allclose(clip.joints[1].bind_transform, translation_matrix([0.25, 1.0, 0.0]))
        assert torch.allclose(clip.joints[1].rest_transform, clip.joints[1].bind_transform)

    def test_present_mask_kept(self):
        """Untracked joints are recorded as absent."""
        recorder = ClipRecorder('take')
        recorder.append(capture(0.0, present=[True, True, False]))
        clip = recorder.finish()
        assert clip.present[0].tolist() == [True, True, False]

    def test_layout_change_rejected(self):
        """A frame with a different joint count is an error."""
        recorder = ClipRecorder('take')
        recorder.append(capture(0.0))
        frame = CaptureFrame(1.0, identity_transforms(2), [-1, 0], ['root', 'hips_joint'])
        with pytest.raises(RecordingError):
            recorder.append(frame)

    def test_mismatched_names_rejected(self):
        """Names and parents must match the transform count."""
        recorder = ClipRecorder('take')
        with pytest.raises(RecordingError):
            recorder.append(CaptureFrame(0.0, identity_transforms(3), [-1, 0], NAMES))

    def test_default_name(self):
        """Unnamed recordings get a timestamped name."""
        assert ClipRecorder().name.startswith('recording_')


class TestFinish:
    """Tests for freezing a recording."""

    def test_append_after_finish(self):
        """Appending to a finished recording raises."""
        recorder = ClipRecorder('take')
        recorder.append(capture(0.0))
        recorder.finish()
        assert not recorder.is_recording
        with pytest.raises(RecordingError):
            recorder.append(capture(1.0))

    def test_finish_is_idempotent(self):
        """finish() returns the same frozen clip."""
        recorder = ClipRecorder('take')
        recorder.append(capture(0.0))
        assert recorder.finish() is recorder.finish()

    def test_clip_unchanged_after_finish(self):
        """The frozen clip keeps its frame count."""
        recorder = ClipRecorder('take')
        recorder.append(capture(0.0))
        recorder.append(capture(0.1))
        clip = recorder.finish()
        with pytest.raises(RecordingError):
            recorder.append(capture(0.2))
        assert clip.frame_count == 2

    def test_finish_without_frames(self):
        """An empty recording finishes as an empty clip."""
        clip = ClipRecorder('empty').finish()
        assert clip.is_empty
        assert clip.duration == 0.0

    def test_concurrent_append(self):
        """Appends from several threads are all accounted for."""
        recorder = ClipRecorder('take', config=RecorderConfig(min_frame_interval=0.0))
        recorder.append(capture(0.0))

        def worker(start):
            for i in range(50):
                recorder.append(capture(start + i * 0.001))

        threads = [threading.Thread(target=worker, args=(1.0 + t,)) for t in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert recorder.frame_count + recorder.dropped_count == 201


class TestMalformedFrames:
    """Tests for frames rejected before they reach the clip."""

    def test_short_mask_rejected(self):
        """A tracked mask with the wrong length raises and the recording survives."""
        recorder = ClipRecorder('take')
        recorder.append(capture(0.0))
        with pytest.raises(RecordingError):
            recorder.append(capture(0.1, present=[True]))
        assert recorder.frame_count == 1
        assert recorder.append(capture(0.2, present=[True, False, True]))
        clip = recorder.finish()
        assert clip.frame_count == 2
        assert clip.present[1].tolist() == [True, False, True]

    def test_short_mask_on_first_frame(self):
        """A bad first frame does not fix the layout."""
        recorder = ClipRecorder('take')
        with pytest.raises(RecordingError):
            recorder.append(capture(5.0, present=[True, True]))
        recorder.append(capture(6.0))
        clip = recorder.finish()
        assert clip.timestamps.tolist() == [0.0]
        assert len(clip.joints) == 3

    def test_nan_timestamp_rejected(self):
        """Non-finite sensor timestamps raise."""
        recorder = ClipRecorder('take')
        recorder.append(capture(0.0))
        with pytest.raises(RecordingError):
            recorder.append(capture(float('nan')))
        assert recorder.finish().frame_count == 1
