"""
Main entry point for VoiceNote.

Run with: python -m voicenote
"""

import signal
import sys
from typing import Optional

from pynput import keyboard

from .config import Config
from .input import InputController
from .metrics import MetricsWriter, get_metrics
from .orchestrator import TranscriptionOrchestrator
from .output import DesktopHost
from .providers.gemini import GeminiTranscriber
from .audio import SegmentedRecorder
from .tool import VoiceTool
from .ui.menu_bar import MenuBarApp


# Global state
config: Config
metrics: MetricsWriter
transcriber: GeminiTranscriber
tool: VoiceTool
menu_bar: MenuBarApp
_keyboard_listener: Optional[keyboard.Listener] = None


def main():
    """Main entry point."""
    global config, metrics, transcriber, tool, menu_bar, _keyboard_listener

    print("VoiceNote v1.0.0 starting...")

    config = Config.load()
    print(f"  Model: {config.model}")
    print(f"  Long recordings: {config.merge_policy}")
    print(f"  API key: {'configured' if config.api_key else 'missing'}")

    metrics = get_metrics(config.metrics_file)

    menu_bar = MenuBarApp()
    host = DesktopHost(menu_bar)

    def snapshot():
        # Re-read settings so changes from the settings dialog apply next time
        return Config.load().snapshot()

    transcriber = GeminiTranscriber()
    tool = VoiceTool(
        host=host,
        config_snapshot_fn=snapshot,
        orchestrator=TranscriptionOrchestrator(transcriber, metrics=metrics),
        recorder_factory=lambda: SegmentedRecorder(sample_rate=config.sample_rate, metrics=metrics),
        metrics=metrics,
    )

    controller = InputController(
        tool,
        trigger_key=config.trigger_key,
        max_recording_seconds=config.max_recording_seconds,
    )

    menu_bar.on_toggle = controller.toggle
    menu_bar.on_cancel = controller.cancel
    menu_bar.on_settings = host.open_settings

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    _keyboard_listener = keyboard.Listener(
        on_press=controller.on_key_press,
        on_release=controller.on_key_release
    )
    _keyboard_listener.start()
    print("  Keyboard listener started")

    print(f"Ready! Press {config.trigger_key} to start/stop, Esc to cancel.")
    print("Press Ctrl+C to quit.")

    # Run menu bar (blocks)
    try:
        menu_bar.run()
    finally:
        shutdown()


def shutdown() -> None:
    """Clean shutdown."""
    print("\nShutting down...")

    if _keyboard_listener:
        _keyboard_listener.stop()

    # Releases the microphone if a recording is in progress
    tool.interrupt()
    transcriber.shutdown()
    metrics.shutdown()

    print("Goodbye!")


def _signal_handler(signum, frame):
    """Handle SIGINT/SIGTERM."""
    shutdown()
    sys.exit(0)


if __name__ == "__main__":
    main()
