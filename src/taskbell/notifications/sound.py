# src/taskbell/notifications/sound.py

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

logger = logging.getLogger(__name__)

BEEP_FREQUENCY_HZ = 700.0
BEEP_DURATION_S = 0.3
BEEP_VOLUME = 0.5
SAMPLE_RATE = 44_100


def make_beep(
    *,
    frequency: float = BEEP_FREQUENCY_HZ,
    duration: float = BEEP_DURATION_S,
    volume: float = BEEP_VOLUME,
    sample_rate: int = SAMPLE_RATE,
) -> Any:
    """Sine wave as a float32 numpy array, ready for sounddevice.play()."""
    import numpy as np

    t = np.arange(int(sample_rate * duration), dtype=np.float32) / sample_rate
    return (volume * np.sin(2.0 * np.pi * frequency * t)).astype(np.float32)


class SoundPlayer:
    """
    Best-effort notification beep.

    Design goals:
    - Optional audio stack (does not crash if PortAudio / sounddevice is unavailable).
    - Blocking playback; callers run it off the event loop (asyncio.to_thread).

    Notes:
    - If enabled but sounddevice fails to import, the player disables itself.
    """

    def __init__(self, enabled: bool, *, sample_rate: int = SAMPLE_RATE):
        self.enabled = bool(enabled)
        self._sample_rate = int(sample_rate)

        self._sd: Any = None  # sounddevice module (runtime import)
        self._beep: Optional[Any] = None
        self._play_lock = threading.Lock()

        if not self.enabled:
            logger.info("Notification sound disabled.")
            return

        # sounddevice loads PortAudio at import time, which can fail on headless hosts.
        try:
            import sounddevice as sd  # type: ignore
        except Exception as e:
            self.enabled = False
            logger.warning(
                "Notification sound is enabled, but the audio backend failed to load. "
                "Install PortAudio + sounddevice to hear reminders. Error: %s",
                repr(e),
            )
            return

        self._sd = sd
        self._beep = make_beep(sample_rate=self._sample_rate)
        logger.info("Notification sound ready (sample_rate=%s).", self._sample_rate)

    def play_beep(self) -> None:
        """Play one beep and wait for it to finish (no-op if disabled)."""
        if not self.enabled or self._sd is None:
            return
        with self._play_lock:
            try:
                self._sd.play(self._beep, self._sample_rate)
                self._sd.wait()
            except Exception as e:
                logger.error("Notification sound playback failed: %s", repr(e))
