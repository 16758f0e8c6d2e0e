"""Default configuration parameters for the period tracking engine."""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class ThemeDef:
    """A classification theme offered to new periods."""
    id: str
    name: str
    color: str                                      # Hex color code
    order: int = 0


@dataclass(frozen=True)
class CategoryDef:
    """A category; every category belongs to one theme."""
    id: str
    theme_id: str
    name: str
    order: int = 0


@dataclass(frozen=True)
class PeriodDefaults:
    """Metadata given to periods opened by end-and-start."""
    theme: Optional[str] = None
    category: Optional[str] = None
    name: str = ""
    notes: str = ""
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class PauseParams:
    """Sentinel metadata stamped on pause periods."""
    theme: str = "pause"
    category: Optional[str] = None
    name: str = "Paused"


@dataclass(frozen=True)
class TimerParams:
    """Timer observer cadence."""
    tick_interval_seconds: float = 1.0


@dataclass(frozen=True)
class StorageParams:
    """Store location and fallback behaviour."""
    data_dir: Optional[str] = None                  # None -> CONTINUUM_DATA_DIR or ~/.continuum
    db_filename: str = "continuum.db"
    timeout_seconds: float = 30.0
    allow_memory_fallback: bool = True              # Degrade to :memory: when disk is unusable


@dataclass(frozen=True)
class LoggingParams:
    """Logging output parameters."""
    level: str = "INFO"
    format_json: bool = False


DEFAULT_THEMES = (
    ThemeDef(id="work", name="Work", color="#3b82f6", order=1),
    ThemeDef(id="personal", name="Personal", color="#10b981", order=2),
    ThemeDef(id="health", name="Health", color="#f59e0b", order=3),
    ThemeDef(id="pause", name="Pause", color="#94a3b8", order=4),
)

DEFAULT_CATEGORIES = (
    CategoryDef(id="development", theme_id="work", name="Development", order=1),
    CategoryDef(id="meetings", theme_id="work", name="Meetings", order=2),
    CategoryDef(id="exercise", theme_id="health", name="Exercise", order=1),
)


@dataclass(frozen=True)
class DefaultConfig:
    """Complete default configuration."""
    period: PeriodDefaults
    pause: PauseParams
    timer: TimerParams
    storage: StorageParams
    logging: LoggingParams
    themes: tuple[ThemeDef, ...] = field(default=DEFAULT_THEMES)
    categories: tuple[CategoryDef, ...] = field(default=DEFAULT_CATEGORIES)


def get_default_config() -> DefaultConfig:
    """Get the default configuration instance."""
    return DefaultConfig(
        period=PeriodDefaults(),
        pause=PauseParams(),
        timer=TimerParams(),
        storage=StorageParams(),
        logging=LoggingParams(),
    )
