"""
Desktop host: typing text, clipboard, and notifications.

Uses macOS accessibility APIs and system commands.
"""

import subprocess
import sys
from typing import Optional, TYPE_CHECKING

from .host import Host
from .types import Position

if TYPE_CHECKING:
    from .ui.menu_bar import MenuBarApp


def _escape_for_applescript(text: str) -> str:
    """Escape special characters for AppleScript string."""
    # Order matters: backslash first
    text = text.replace("\\", "\\\\")
    text = text.replace('"', '\\"')
    text = text.replace("\r", "\\r")
    text = text.replace("\n", "\\n")
    text = text.replace("\t", "\\t")
    return text


def type_text(text: str) -> bool:
    """
    Type text at the current cursor position.

    Uses macOS accessibility API via osascript.

    Returns:
        True if osascript accepted the keystrokes
    """
    if not text:
        return True

    try:
        escaped = _escape_for_applescript(text)

        script = f'''
        tell application "System Events"
            keystroke "{escaped}"
        end tell
        '''

        # Use stdin instead of -e to avoid ARG_MAX limits for long text
        result = subprocess.run(
            ["osascript"],
            input=script.encode("utf-8"),
            capture_output=True,
            timeout=10.0
        )
        return result.returncode == 0
    except subprocess.TimeoutExpired:
        print("[Output] type_text: osascript timed out")
    except OSError as e:
        print(f"[Output] type_text error: {e}")
    return False


def copy_to_clipboard(text: str) -> None:
    """
    Copy text to the system clipboard.

    Args:
        text: Text to copy
    """
    if not text:
        return

    try:
        subprocess.run(
            ["pbcopy"],
            input=text.encode("utf-8"),
            timeout=2.0
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        print(f"[Output] copy_to_clipboard error: {e}")


def notify(message: str, title: str = "VoiceNote") -> None:
    """
    Show a macOS notification.

    Args:
        message: Notification body
        title: Notification title
    """
    try:
        escaped_message = _escape_for_applescript(message)
        escaped_title = _escape_for_applescript(title)
        script = f'''
        display notification "{escaped_message}" with title "{escaped_title}"
        '''
        subprocess.run(
            ["osascript"],
            input=script.encode("utf-8"),
            capture_output=True,
            timeout=2.0
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        print(f"[Output] notify error: {e}")


def play_sound(sound_name: str = "Tink") -> None:
    """
    Play a system sound.

    Args:
        sound_name: Name of sound in /System/Library/Sounds/
    """
    try:
        subprocess.run(
            ["afplay", f"/System/Library/Sounds/{sound_name}.aiff"],
            capture_output=True,
            timeout=2.0
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        print(f"[Output] play_sound error: {e}")


class DesktopHost(Host):
    """
    Host for running the voice tool as a standalone desktop app.

    Artifacts are typed at the cursor (clipboard if typing fails); separate
    artifacts are separated by a blank line. The menu bar icon is the
    capture-in-progress affordance.
    """

    SEVERITY_SOUNDS = {"success": "Glass", "warning": "Tink", "error": "Basso"}

    def __init__(self, menu_bar: Optional["MenuBarApp"] = None):
        self.menu_bar = menu_bar
        self._artifacts_in_episode = 0

    def get_anchor(self) -> Position:
        # Text goes to the focused cursor; positions only order the artifacts
        self._artifacts_in_episode = 0
        return Position(0, 0)

    def create_artifact(self, text: str, position: Position) -> None:
        if self._artifacts_in_episode:
            text = "\n\n" + text
        self._artifacts_in_episode += 1

        if not type_text(text):
            copy_to_clipboard(text.strip())
            notify("Could not type text - copied to clipboard")
        print(f"[Output] \"{text.strip()[:80]}\"")

    def set_affordance(self, state: str) -> None:
        if self.menu_bar:
            self.menu_bar.set_status(state)
        if state == "recording":
            play_sound("Tink")

    def notify(self, severity: str, title: str, description: str) -> None:
        print(f"[Output] {severity}: {title} - {description}")
        if self.menu_bar:
            self.menu_bar.show_notification(title, description)
        else:
            notify(description, title=title)
        if severity != "success":
            play_sound(self.SEVERITY_SOUNDS.get(severity, "Tink"))

    def open_settings(self) -> None:
        # Settings UI runs its own event loop; keep it out of this process
        subprocess.Popen(
            [sys.executable, "-m", "voicenote.ui.settings"],
            start_new_session=True,
        )
        print("[Output] Settings dialog opened")
