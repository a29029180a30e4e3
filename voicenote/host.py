"""
Callbacks the voice tool needs from the application that embeds it.
"""

from abc import ABC, abstractmethod

from .types import Position, Severity


class Host(ABC):
    """
    The embedding application.

    Subclasses must implement:
    - get_anchor(): where the first output artifact goes
    - create_artifact(): materialize one piece of transcribed text
    - set_affordance(): show "idle" / "recording" / "processing"
    - notify(): transient notification
    - open_settings(): let the user enter credentials
    """

    @abstractmethod
    def get_anchor(self) -> Position:
        """Current viewport anchor for placing outputs."""

    @abstractmethod
    def create_artifact(self, text: str, position: Position) -> None:
        """Create one text-bearing output artifact at position."""

    @abstractmethod
    def set_affordance(self, state: str) -> None:
        """Reflect the tool state ("idle", "recording", "processing") in the UI."""

    @abstractmethod
    def notify(self, severity: Severity, title: str, description: str) -> None:
        """Show a transient notification."""

    @abstractmethod
    def open_settings(self) -> None:
        """Open the credentials configuration surface."""
