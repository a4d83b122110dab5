"""Harvest settings.

Defaults reproduce the practice-site run. Environment variables (or a .env
file) override them, and CLI flags override the environment.
"""

import os
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

from lib.cron import CronSchedule

# Load environment variables from .env file
load_dotenv()


DEFAULT_TARGET_URL = "https://learnwebcode.github.io/practice-requests/"
DEFAULT_SCHEDULE = "*/5 * * * * *"  # every 5 seconds

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off", ""}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


class HarvestConfig(BaseModel):
    """Everything a harvest session and its schedule need."""

    target_url: str = DEFAULT_TARGET_URL
    schedule: str = DEFAULT_SCHEDULE
    timezone: Optional[str] = None

    # Output
    output_dir: Path = Path(".")
    names_file: str = "names.txt"
    names_separator: str = "\r\n"
    screenshot_path: Optional[str] = None

    # Page contract
    names_selector: str = ".info strong"
    reveal_selector: str = "#clickme"
    revealed_selector: str = "#data"
    input_selector: str = "#ourfield"
    input_value: str = "blue"
    submit_selector: str = "#ourform button"
    result_selector: str = "#message"
    image_selector: str = "img"

    # Browser
    headless: bool = True
    stealth: bool = False
    timeout_ms: int = 30000
    viewport_width: int = 1080
    viewport_height: int = 1024

    @field_validator("schedule")
    @classmethod
    def validate_schedule(cls, v: str) -> str:
        CronSchedule.parse(v)
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        if v:
            try:
                ZoneInfo(v)
            except (ZoneInfoNotFoundError, ValueError):
                raise ValueError(f"Unknown timezone {v!r}") from None
        return v or None

    @field_validator("timeout_ms", "viewport_width", "viewport_height")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @property
    def cron(self) -> CronSchedule:
        return CronSchedule.parse(self.schedule)

    @property
    def tzinfo(self) -> Optional[ZoneInfo]:
        return ZoneInfo(self.timezone) if self.timezone else None

    @property
    def names_path(self) -> Path:
        return self.output_dir / self.names_file

    @property
    def viewport(self) -> dict:
        return {"width": self.viewport_width, "height": self.viewport_height}

    @classmethod
    def from_env(cls, **overrides) -> "HarvestConfig":
        """Build config from environment variables, then apply overrides.

        Overrides with a value of None are ignored, so argparse results can be
        passed straight through.
        """
        values = {
            "target_url": os.getenv("HARVEST_TARGET_URL", DEFAULT_TARGET_URL),
            "schedule": os.getenv("HARVEST_SCHEDULE", DEFAULT_SCHEDULE),
            "timezone": os.getenv("HARVEST_TIMEZONE") or None,
            "output_dir": os.getenv("HARVEST_OUTPUT_DIR", "."),
            "names_file": os.getenv("HARVEST_NAMES_FILE", "names.txt"),
            "input_value": os.getenv("HARVEST_INPUT_VALUE", "blue"),
            "headless": _env_bool("HARVEST_HEADLESS", True),
            "stealth": _env_bool("HARVEST_STEALTH", False),
            "timeout_ms": _env_int("HARVEST_TIMEOUT_MS", 30000),
            "screenshot_path": os.getenv("HARVEST_SCREENSHOT") or None,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
