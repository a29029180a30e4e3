"""
Configuration management with immutable snapshots.

Loads from: environment variables > settings.json > defaults
Provides immutable snapshots so each recording sees consistent settings.
"""

from pathlib import Path
from typing import Optional
import json
import os

from .providers.gemini import DEFAULT_MODEL
from .types import ConfigSnapshot, DEFAULT_MERGE_POLICY, MERGE_POLICIES, MergePolicy


API_KEY_ENV = "GEMINI_API_KEY"

# Defaults
DEFAULT_CONFIG = {
    # Transcription
    "model": DEFAULT_MODEL,
    "merge_policy": DEFAULT_MERGE_POLICY,

    # Audio
    "sample_rate": 16000,
    "max_recording_seconds": 600.0,  # Safety stop for forgotten recordings

    # Input
    "trigger_key": "alt_r",
}


class Config:
    """
    Single source of truth for voice settings.

    Usage:
        config = Config.load()
        snapshot = config.snapshot()  # Immutable copy for one state
    """

    def __init__(self, data_dir: Optional[Path] = None):
        # Transcription
        self.api_key: Optional[str] = None
        self.model: str = DEFAULT_MODEL
        self.merge_policy: MergePolicy = DEFAULT_MERGE_POLICY

        # Audio
        self.sample_rate: int = 16000
        self.max_recording_seconds: float = 600.0

        # Input
        self.trigger_key: str = "alt_r"

        # Paths
        self.data_dir: Path = data_dir or Path.home() / ".voicenote"
        self.metrics_file: Path = self.data_dir / "metrics.jsonl"
        self.settings_file: Path = self.data_dir / "settings.json"
        self.env_file: Path = self.data_dir / ".env"

    @classmethod
    def load(cls, data_dir: Optional[Path] = None) -> "Config":
        """Load configuration from all sources."""
        config = cls(data_dir)
        config._ensure_data_dir()
        config._load_env()
        config._load_settings()
        return config

    def _ensure_data_dir(self) -> None:
        """Create data directory if it doesn't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _load_env(self) -> None:
        """Load the API key from .env files and the environment."""
        # Project root first, then ~/.voicenote/.env
        env_file = Path(".env")
        if env_file.exists():
            self._parse_env_file(env_file)

        if self.env_file.exists():
            self._parse_env_file(self.env_file)

        # Environment variables override file values
        self.api_key = os.getenv(API_KEY_ENV, self.api_key) or None

    def _parse_env_file(self, env_file: Path) -> None:
        """Parse a .env file and extract the API key."""
        try:
            with open(env_file) as f:
                for line in f:
                    line = line.strip()
                    if not line or line.startswith("#") or "=" not in line:
                        continue
                    key, value = line.split("=", 1)
                    if key.strip() == API_KEY_ENV:
                        self.api_key = value.strip().strip("'\"") or None
        except OSError as e:
            print(f"[Config] Error loading {env_file}: {e}")

    def _load_settings(self) -> None:
        """Load settings from settings.json."""
        # Project root first for local overrides
        project_settings = Path("settings.json")
        if project_settings.exists():
            self._apply_settings_file(project_settings)

        # Then ~/.voicenote/settings.json (overrides)
        if self.settings_file.exists():
            self._apply_settings_file(self.settings_file)

    def _apply_settings_file(self, settings_file: Path) -> None:
        """Apply settings from a JSON file."""
        try:
            with open(settings_file) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            print(f"[Config] Error loading {settings_file}: {e}")
            return

        for key, default in DEFAULT_CONFIG.items():
            if key not in data:
                continue
            try:
                value = type(default)(data[key])
            except (TypeError, ValueError):
                print(f"[Config] Ignoring invalid {key}: {data[key]!r}")
                continue
            if key == "merge_policy" and value not in MERGE_POLICIES:
                print(f"[Config] Ignoring unknown merge_policy: {value!r}")
                continue
            setattr(self, key, value)

    # ---- Read/write values ----

    def set_api_key(self, api_key: str) -> None:
        self.api_key = api_key.strip() or None

    def clear_api_key(self) -> None:
        self.api_key = None

    def set_model(self, model: str) -> None:
        self.model = model or DEFAULT_MODEL

    def set_merge_policy(self, merge_policy: str) -> None:
        if merge_policy not in MERGE_POLICIES:
            raise ValueError(f"Unknown merge policy: {merge_policy!r}")
        self.merge_policy = merge_policy

    def save_settings(self) -> None:
        """Save current settings to settings.json (merged with existing keys)."""
        self._ensure_data_dir()

        existing = {}
        if self.settings_file.exists():
            try:
                with open(self.settings_file) as f:
                    existing = json.load(f)
            except (OSError, ValueError):
                existing = {}

        existing.update({
            "model": self.model,
            "merge_policy": self.merge_policy,
            "trigger_key": self.trigger_key,
        })

        with open(self.settings_file, "w") as f:
            json.dump(existing, f, indent=2)

    def save_api_key(self) -> None:
        """Write the API key to ~/.voicenote/.env (removed when cleared)."""
        self._ensure_data_dir()

        # Preserve unrelated lines
        lines = []
        if self.env_file.exists():
            with open(self.env_file) as f:
                for line in f:
                    key = line.split("=")[0].strip() if "=" in line else ""
                    if key != API_KEY_ENV:
                        lines.append(line.rstrip("\n"))

        if self.api_key:
            lines.append(f"{API_KEY_ENV}={self.api_key}")

        with open(self.env_file, "w") as f:
            for line in lines:
                f.write(line + "\n")

    def snapshot(self) -> ConfigSnapshot:
        """Return immutable copy of the voice settings."""
        return ConfigSnapshot(
            api_key=self.api_key,
            model=self.model,
            merge_policy=self.merge_policy,
        )
