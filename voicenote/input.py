"""
Input controller for hotkeys.

Press the trigger key to start recording, press again to stop and
transcribe. Esc cancels; Shift+Esc is an emergency reset that interrupts
whatever the tool is doing.
"""

import threading
from typing import Optional, TYPE_CHECKING

from .output import play_sound

if TYPE_CHECKING:
    from .tool import VoiceTool


class InputController:
    """
    Translates raw key events into voice tool signals.

    Handles:
    - Toggle: trigger key starts, next press stops
    - Cancel: Esc while recording or transcribing
    - Emergency reset: Shift+Esc always returns the tool to idle
    - Safety timeout: a forgotten recording is completed after max_recording_seconds

    Usage:
        controller = InputController(tool, trigger_key="alt_r")

        # Wire to pynput listener
        listener = keyboard.Listener(
            on_press=controller.on_key_press,
            on_release=controller.on_key_release
        )
    """

    def __init__(
        self,
        tool: "VoiceTool",
        trigger_key: str = "alt_r",
        max_recording_seconds: float = 600.0,
    ):
        self.tool = tool
        self.trigger_key = trigger_key
        self.max_recording_seconds = max_recording_seconds
        self._lock = threading.Lock()
        self._safety_timer: Optional[threading.Timer] = None

        # Key tracking
        self._trigger_key_pressed = False
        self._shift_pressed = False

    def on_key_press(self, key) -> None:
        """
        Handle key press events.

        Args:
            key: pynput key object
        """
        from pynput.keyboard import Key

        if key == Key.shift or key == Key.shift_r:
            self._shift_pressed = True
            return

        if key == Key.esc:
            if self._shift_pressed:
                self.emergency_reset()
            else:
                self.cancel()
            return

        if not self._is_trigger_key(key):
            return

        with self._lock:
            if self._trigger_key_pressed:
                return  # Key repeat
            self._trigger_key_pressed = True

        self.toggle()

    def on_key_release(self, key) -> None:
        """
        Handle key release events.

        Args:
            key: pynput key object
        """
        from pynput.keyboard import Key

        if key == Key.shift or key == Key.shift_r:
            self._shift_pressed = False
            return

        if self._is_trigger_key(key):
            with self._lock:
                self._trigger_key_pressed = False

    def _is_trigger_key(self, key) -> bool:
        """Check if key is the recording trigger."""
        from pynput.keyboard import Key, KeyCode

        # Named Key attribute, e.g. "alt_r", "f17"
        if hasattr(Key, self.trigger_key):
            if key == getattr(Key, self.trigger_key):
                return True

        # F17 arrives as a bare KeyCode on macOS (vk 64)
        if self.trigger_key.lower() == "f17" and isinstance(key, KeyCode):
            if getattr(key, "vk", None) == 64:
                return True

        return False

    def toggle(self) -> None:
        """Start when idle, stop when recording, refuse while transcribing."""
        state = self.tool.state
        if state == "idle":
            self.tool.start()
            if self.tool.state == "recording":
                self._arm_safety_timer()
        elif state == "recording":
            self._cancel_safety_timer()
            self.tool.stop()
        else:
            play_sound("Basso")

    def cancel(self) -> None:
        """Esc: abort recording or transcription."""
        self._cancel_safety_timer()
        if self.tool.state != "idle":
            self.tool.cancel()

    def emergency_reset(self) -> None:
        """Shift+Esc: force the tool back to idle."""
        with self._lock:
            self._trigger_key_pressed = False
        self._cancel_safety_timer()
        self.tool.interrupt()
        print("[Input] Emergency reset triggered")

    def _arm_safety_timer(self) -> None:
        self._cancel_safety_timer()
        timer = threading.Timer(self.max_recording_seconds, self._safety_timeout)
        timer.daemon = True
        self._safety_timer = timer
        timer.start()

    def _safety_timeout(self) -> None:
        """Called when a recording has run for max_recording_seconds."""
        self._safety_timer = None
        if self.tool.state == "recording":
            print("[Input] Maximum recording length reached - completing")
            self.tool.complete()

    def _cancel_safety_timer(self) -> None:
        if self._safety_timer:
            self._safety_timer.cancel()
            self._safety_timer = None
