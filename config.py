"""
Configuration module - loads all settings from environment variables.
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
try:
    load_dotenv()
except Exception as e:
    print(f"Warning: Failed to load .env file: {e}")
    print("Continuing with environment variables or defaults...")


DEFAULT_GEMINI_MODEL = "gemini-2.5-flash-image"


class Config:
    """Application configuration loaded from environment variables."""

    @staticmethod
    def _get_int(key: str, default: int) -> int:
        """Safely parse integer environment variable."""
        try:
            return int(os.getenv(key, str(default)))
        except (ValueError, TypeError) as e:
            print(f"Warning: Invalid integer for {key}, using default {default}: {e}")
            return default

    @staticmethod
    def _get_float(key: str, default: float) -> float:
        """Safely parse float environment variable."""
        try:
            return float(os.getenv(key, str(default)))
        except (ValueError, TypeError) as e:
            print(f"Warning: Invalid float for {key}, using default {default}: {e}")
            return default

    @staticmethod
    def _get_bool(key: str, default: bool) -> bool:
        """Safely parse boolean environment variable."""
        try:
            value = os.getenv(key, str(default)).lower()
            return value in ("true", "1", "yes", "on")
        except Exception as e:
            print(f"Warning: Invalid boolean for {key}, using default {default}: {e}")
            return default

    # Gemini API (the key itself is read per call, see gemini_settings)
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", DEFAULT_GEMINI_MODEL)

    # Generation
    # Pause between the two progress labels shown while a generation runs
    PROGRESS_DELAY_SECONDS: float = _get_float.__func__("PROGRESS_DELAY_SECONDS", 0.5)
    MAX_UPLOAD_BYTES: int = _get_int.__func__("MAX_UPLOAD_BYTES", 20 * 1024 * 1024)
    DOWNLOAD_PREFIX: str = os.getenv("DOWNLOAD_PREFIX", "ratioflip")

    # Sessions (held in memory only)
    SESSION_TTL_SECONDS: int = _get_int.__func__("SESSION_TTL_SECONDS", 3600)
    MAX_SESSIONS: int = _get_int.__func__("MAX_SESSIONS", 100)

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = _get_int.__func__("PORT", 8000)
    RELOAD: bool = _get_bool.__func__("RELOAD", False)

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        if not os.getenv("GEMINI_API_KEY", "").strip():
            raise ValueError("GEMINI_API_KEY environment variable is required")

    @classmethod
    def gemini_settings(cls):
        """
        Snapshot the Gemini settings from the process environment.

        The API key is looked up on every call and never cached, so a key
        added to the environment after startup is picked up by the next
        generation.
        """
        # Import here to avoid circular dependency
        from image.models import AspectRatio, GeminiSettings

        return GeminiSettings(
            api_key=os.getenv("GEMINI_API_KEY", "").strip(),
            model=os.getenv("GEMINI_MODEL", cls.GEMINI_MODEL),
            aspect_ratio=AspectRatio.PORTRAIT,
        )
