"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No show logic
- No protocol constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import SUPPORTED_FRAME_RATES


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup and passed to create_app().
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = "dev"
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # HTTP server
    # ------------------------------------------------------------------

    host: str = "0.0.0.0"
    port: int = 3000
    static_dir: str = "public"
    enable_debug_endpoint: bool = True

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    tags_file: str = "tags.json"

    # ------------------------------------------------------------------
    # Time source
    # ------------------------------------------------------------------

    # Port name or zero-based index; None opens the first port
    midi_port: str | None = None
    disable_midi: bool = False
    synthetic_frame_rate: float = 30

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if PORT or SYNTHETIC_FRAME_RATE are malformed.
        """
        frame_rate = float(os.environ.get("SYNTHETIC_FRAME_RATE", "30"))
        if frame_rate not in SUPPORTED_FRAME_RATES:
            raise ValueError(
                f"SYNTHETIC_FRAME_RATE must be one of {SUPPORTED_FRAME_RATES}, got {frame_rate}"
            )
        if frame_rate.is_integer():
            frame_rate = int(frame_rate)

        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),

            host=os.environ.get("HOST", "0.0.0.0"),
            port=int(os.environ.get("PORT", "3000")),
            static_dir=os.environ.get("STATIC_DIR", "public"),
            enable_debug_endpoint=_env_flag("ENABLE_DEBUG_ENDPOINT", "1"),

            tags_file=os.environ.get("TAGS_FILE", "tags.json"),

            midi_port=os.environ.get("MIDI_PORT") or None,
            disable_midi=_env_flag("DISABLE_MIDI", "0"),
            synthetic_frame_rate=frame_rate,
        )
