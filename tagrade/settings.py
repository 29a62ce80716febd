from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="TAGRADE_", extra="ignore")

    # Toolchain
    javac_command: str = "javac"
    java_command: str = "java"
    source_suffix: str = ".java"

    # All program stdout/stderr is decoded with this codec, whatever the source encoding.
    runtime_encoding: str = "shift_jis"

    # Diagnostic signatures
    unmappable_marker: str = "error: unmappable character"
    ambiguous_classpath_marker: str = "error: cannot find symbol"
    runtime_error_markers: tuple[str, ...] = (
        "Exception in thread",
        "Error: Main method not found in class",
    )

    # Workspace layout
    workspace_dir_name: str = "workspace"
    db_file_name: str = "tagrade.db"

    # Captured stdout/stderr cap per stream (bytes)
    max_stream_bytes: int = 4 * 1024 * 1024

    # Submission archive safety
    unzip_max_entries: int = 1024 * 5
    unzip_max_file_bytes: int = 1024 * 1024 * 1024 * 5  # 5GiB
    unzip_max_total_bytes: int = 1024 * 1024 * 1024 * 5  # 5GiB
    zip_name_encoding: str = "shift_jis"

    log_level: str = Field(default="WARNING")


SETTINGS = Settings()
