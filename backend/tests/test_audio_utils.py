"""
Unit tests for audio utility functions.

Tests audio duration calculation and precision timers.
"""
import unittest
import tempfile
import os
import wave
from voicebench.utils import get_audio_duration_seconds, get_precision_timer


class TestAudioUtils(unittest.TestCase):
    """Test cases for audio utility functions."""

    def test_nonexistent_file(self):
        """Test audio duration for non-existent file."""
        duration = get_audio_duration_seconds("nonexistent.mp3")
        self.assertEqual(duration, 0.0, "Non-existent file should return 0.0 duration")

    def test_empty_file(self):
        """Test audio duration for empty file."""
        with tempfile.NamedTemporaryFile(suffix=".mp3", delete=False) as f:
            temp_path = f.name
        try:
            duration = get_audio_duration_seconds(temp_path)
            # Empty file should return 0.0 or very small duration
            self.assertLessEqual(duration, 0.1, "Empty file should return very small duration")
        finally:
            os.unlink(temp_path)

    def test_wav_duration(self):
        """Test audio duration for a generated one-second WAV file."""
        with tempfile.NamedTemporaryFile(suffix=".wav", delete=False) as f:
            temp_path = f.name
        try:
            with wave.open(temp_path, "wb") as wf:
                wf.setnchannels(1)
                wf.setsampwidth(2)
                wf.setframerate(16000)
                wf.writeframes(b"\x00\x00" * 16000)
            duration = get_audio_duration_seconds(temp_path)
            self.assertAlmostEqual(duration, 1.0, places=2, msg="16000 frames at 16 kHz should last one second")
        finally:
            os.unlink(temp_path)

    def test_size_based_estimate(self):
        """Test that undecodable audio falls back to a bitrate estimate."""
        with tempfile.NamedTemporaryFile(suffix=".mp3", delete=False) as f:
            f.write(b"\x01" * 16000)
            temp_path = f.name
        try:
            duration = get_audio_duration_seconds(temp_path)
            self.assertAlmostEqual(duration, 1.0, places=2, msg="16000 bytes at 128 kbps should estimate one second")
        finally:
            os.unlink(temp_path)

    def test_precision_timer(self):
        """Test precision timer function."""
        timer = get_precision_timer()
        time1 = timer()
        time2 = timer()
        self.assertGreater(time2, time1, "Timer should return increasing values")
        self.assertIsInstance(time1, float, "Timer should return float values")


if __name__ == "__main__":
    unittest.main()
