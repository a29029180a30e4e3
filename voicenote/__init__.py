"""
VoiceNote - Segmented voice capture with cloud transcription.

This package provides:
- Microphone capture split into fixed 45-second segments while recording
- Parallel transcription of every segment via the Gemini API
- Partial-failure tolerant reconciliation (one note per segment, or merged)
- A three-state voice tool (idle / recording / processing) with cancellation

Main entry point: python -m voicenote
"""

__version__ = "1.0.0"
