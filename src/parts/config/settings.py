"""Runtime settings."""

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STATE_FILE = Path(".parts") / "state.json"


def default_jobs() -> int:
    return min(32, (os.cpu_count() or 1) + 4)


class Settings(BaseSettings):
    """Runtime settings loaded from ``PARTS_*`` environment variables.

    Command-line flags override these values.
    """

    model_config = SettingsConfigDict(env_prefix="PARTS_", case_sensitive=False)

    state_file: Path = DEFAULT_STATE_FILE
    jobs: int = Field(default_factory=default_jobs, ge=1)
    log_level: str = "WARNING"
    log_format: Literal["console", "json"] = "console"

    def state_path(self, root: Path) -> Path:
        """Resolve the state file against the project root."""
        return self.state_file if self.state_file.is_absolute() else root / self.state_file
