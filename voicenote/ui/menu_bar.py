"""
macOS menu bar status item using rumps.

The menu bar title is the voice tool's affordance: a microphone when idle,
a red dot with the running time while recording (so a 45-second segment
boundary is visible), and a bolt while transcribing.
"""

import time
from typing import Optional, Callable

import rumps


ICONS = {
    "idle": "🎤",
    "recording": "🔴",
    "processing": "⚡",
}

LABELS = {
    "idle": "Status: Idle",
    "recording": "Status: Recording",
    "processing": "Status: Transcribing",
}


def format_elapsed(seconds: float) -> str:
    """0:07, 1:32, 12:05"""
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


class MenuBarApp:
    """
    Menu bar front end for VoiceNote.

    Callbacks are wired by __main__:
    - on_toggle: "Start/Stop Recording" item
    - on_cancel: "Cancel" item
    - on_settings: "Settings..." item
    """

    def __init__(self):
        self.on_toggle: Optional[Callable[[], None]] = None
        self.on_cancel: Optional[Callable[[], None]] = None
        self.on_settings: Optional[Callable[[], None]] = None

        self.status = "idle"
        self._recording_since: Optional[float] = None
        self._app: Optional["_VoiceNoteRumpsApp"] = None

    def run(self) -> None:
        """Run the menu bar app (blocks)."""
        self._app = _VoiceNoteRumpsApp(self)
        self._app.run()

    def set_status(self, status: str) -> None:
        """
        Update the status indicator.

        Args:
            status: One of "idle", "recording", "processing"
        """
        self.status = status
        self._recording_since = time.monotonic() if status == "recording" else None

        if self._app:
            self._app.status_item.title = LABELS.get(status, LABELS["idle"])
            self._app.title = self.title()

    def title(self) -> str:
        """Menu bar text for the current status."""
        icon = ICONS.get(self.status, ICONS["idle"])
        if self._recording_since is None:
            return icon
        return f"{icon} {format_elapsed(time.monotonic() - self._recording_since)}"

    def show_notification(self, title: str, message: str) -> None:
        """Show macOS notification."""
        try:
            rumps.notification("VoiceNote", title, message)
        except RuntimeError as e:
            print(f"[MenuBar] Notification failed: {e}")


class _VoiceNoteRumpsApp(rumps.App):
    """Internal rumps app implementation."""

    def __init__(self, parent: MenuBarApp):
        super().__init__(ICONS["idle"])
        self.parent = parent

        self.status_item = rumps.MenuItem(LABELS["idle"], callback=None)
        self.menu = [
            self.status_item,
            None,  # Separator
            rumps.MenuItem("Start/Stop Recording", callback=self._toggle_clicked),
            rumps.MenuItem("Cancel", callback=self._cancel_clicked),
            None,  # Separator
            rumps.MenuItem("Settings...", callback=self._settings_clicked),
            None,  # Separator
        ]

        # Refresh the elapsed time once a second while recording
        self._clock = rumps.Timer(self._refresh_title, 1)
        self._clock.start()

    def _refresh_title(self, _) -> None:
        if self.parent.status == "recording":
            self.title = self.parent.title()

    def _toggle_clicked(self, _) -> None:
        if self.parent.on_toggle:
            self.parent.on_toggle()

    def _cancel_clicked(self, _) -> None:
        if self.parent.on_cancel:
            self.parent.on_cancel()

    def _settings_clicked(self, _) -> None:
        if self.parent.on_settings:
            self.parent.on_settings()
        else:
            print("[MenuBar] Settings clicked (no handler)")
