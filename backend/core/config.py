"""Core configuration with Pydantic v2 Settings."""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Invoice file builder settings with environment variable support."""

    log_level: str = "INFO"
    log_json: bool = False

    # Root for generated invoices, letters and uploaded templates
    UPLOAD_DIR: str = "data"
    # Sub-folder of UPLOAD_DIR holding custom invoice templates
    TEMPLATE_STORAGE_DIR: str = "filestorage"

    # PDF/A-3 conversion (zf:1:extended)
    GHOSTSCRIPT_BINARY: str = "gs"
    # None waits for Ghostscript indefinitely
    GHOSTSCRIPT_TIMEOUT_SECONDS: Optional[float] = None
    ZUGFERD_ICC_PROFILE: str = "/usr/share/color/icc/ghostscript/srgb.icc"

    # Re-raise e-invoice profile failures instead of logging them
    PROFILE_ERRORS_RAISE: bool = False


# Global settings instance
settings = Settings()
