"""Configuration management from environment variables."""
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file
load_dotenv()

# Project root
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_OLD_RESULTS_DIR = DATA_DIR / "results"
DEFAULT_NEW_RESULTS_DIR = DATA_DIR / "results_new"


def _split_platforms(value: str) -> tuple[str, ...]:
    return tuple(p.strip().lower() for p in value.split(",") if p.strip())


class Config:
    """Application configuration."""

    # Store locations
    OLD_RESULTS_DIR: Path = Path(os.getenv("OLD_RESULTS_DIR", str(DEFAULT_OLD_RESULTS_DIR)))
    NEW_RESULTS_DIR: Path = Path(os.getenv("NEW_RESULTS_DIR", str(DEFAULT_NEW_RESULTS_DIR)))
    PLATFORMS: tuple[str, ...] = _split_platforms(os.getenv("PLATFORMS", "olx,zap"))

    # Merge policy
    MISS_THRESHOLD: int = int(os.getenv("MISS_THRESHOLD", "3"))
    RETENTION_DAYS: int = int(os.getenv("RETENTION_DAYS", "5"))
    TIMEZONE: str = os.getenv("TIMEZONE", "UTC")

    # CI
    CI_ENV_FILE: str | None = os.getenv("GITHUB_ENV")

    # Housekeeping
    SCREENSHOTS_DIR: Path = Path(os.getenv("SCREENSHOTS_DIR", str(Path.cwd() / "screenshots")))
    LOGS_DIR: Path = Path(os.getenv("LOGS_DIR", str(Path.cwd() / "logs")))
    MAX_INVALID_RATIO: float = float(os.getenv("MAX_INVALID_RATIO", "0.3"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        errors = []
        if not cls.PLATFORMS:
            errors.append("PLATFORMS must name at least one platform")
        if cls.MISS_THRESHOLD < 1:
            errors.append("MISS_THRESHOLD must be >= 1")
        if cls.RETENTION_DAYS < 0:
            errors.append("RETENTION_DAYS must be >= 0")
        if not 0 <= cls.MAX_INVALID_RATIO <= 1:
            errors.append("MAX_INVALID_RATIO must be between 0 and 1")
        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")


config = Config()


@dataclass(frozen=True)
class MergeSettings:
    """Immutable settings for one merge invocation.

    The engine only ever sees this object; nothing below the CLI reads the
    module-level ``config``.
    """

    old_dir: Path = DEFAULT_OLD_RESULTS_DIR
    new_dir: Path = DEFAULT_NEW_RESULTS_DIR
    platforms: tuple[str, ...] = ("olx", "zap")
    miss_threshold: int = 3
    retention_days: int = 5
    timezone: str = "UTC"
    ci_env_file: Optional[Path] = None
    screenshots_dir: Path = field(default_factory=lambda: Path.cwd() / "screenshots")
    logs_dir: Path = field(default_factory=lambda: Path.cwd() / "logs")

    @classmethod
    def from_config(cls, cfg: Config = config) -> "MergeSettings":
        return cls(
            old_dir=Path(cfg.OLD_RESULTS_DIR),
            new_dir=Path(cfg.NEW_RESULTS_DIR),
            platforms=tuple(cfg.PLATFORMS),
            miss_threshold=cfg.MISS_THRESHOLD,
            retention_days=cfg.RETENTION_DAYS,
            timezone=cfg.TIMEZONE,
            ci_env_file=Path(cfg.CI_ENV_FILE) if cfg.CI_ENV_FILE else None,
            screenshots_dir=Path(cfg.SCREENSHOTS_DIR),
            logs_dir=Path(cfg.LOGS_DIR),
        )

    def with_paths(
        self,
        old_dir: str | Path | None = None,
        new_dir: str | Path | None = None,
    ) -> "MergeSettings":
        """Return a copy pointing at other store directories (None keeps the current one)."""
        return replace(
            self,
            old_dir=Path(old_dir) if old_dir else self.old_dir,
            new_dir=Path(new_dir) if new_dir else self.new_dir,
        )

    def old_file(self, platform: str) -> Path:
        return self.old_dir / f"{platform}Results.json"

    def new_file(self, platform: str) -> Path:
        return self.new_dir / f"{platform}Results.json"
