"""
Configuration Management

Two layers of configuration drive a batch run:

- ``Configuration`` holds the per-run processing parameters given on the
  command line. It is immutable and shared read-only by every work unit.
- ``RuntimeSettings`` holds how the run is executed (worker command,
  concurrency, timeouts, logging). It is loaded with Dynaconf from layered
  settings files and ``CONTOUR_TILES_*`` environment variables, in order of
  increasing priority:

  1. Global settings (/etc/contour_tiles/)
  2. User settings (~/.config/contour_tiles/)
  3. Current directory settings (./)
  4. Environment variable specified file (CONTOUR_TILES_SETTINGS_FILE_FOR_DYNACONF)
"""

import os
import pathlib
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from dynaconf import Dynaconf

from ..errors import ConfigValidationError


USER_DIR = pathlib.Path("~/.config/contour_tiles").expanduser()
GLOB_DIR = pathlib.Path("/etc/contour_tiles/")
CURR_DIR = pathlib.Path("./").absolute()

DEFAULT_WORKER_COMMAND = ("npx", "tsx", "../src/generate-countour-tile-batch.ts")
DEFAULT_MAX_WORKERS = 8

LOG_FORMATS = ("console", "json")


class SourceEncoding(str, Enum):
    """Elevation encoding of the source RGB tiles."""
    MAPBOX = "mapbox"
    TERRARIUM = "terrarium"


@dataclass(frozen=True)
class Configuration:
    """Processing parameters shared by every tile of a run."""
    source_path: str
    output_dir: str
    increment: int = 10
    source_max_zoom: int = 8
    source_encoding: SourceEncoding = SourceEncoding.MAPBOX
    output_max_zoom: int = 11
    output_min_zoom: int = 5
    verbose: bool = False

    @classmethod
    def create(
        cls,
        source_path: Optional[str],
        output_dir: Optional[str],
        increment: int = 10,
        source_max_zoom: int = 8,
        source_encoding: Any = SourceEncoding.MAPBOX,
        output_max_zoom: int = 11,
        output_min_zoom: int = 5,
        verbose: bool = False
    ) -> "Configuration":
        """
        Validate raw option values and build a Configuration.

        The output minimum zoom is not range checked here; tile enumeration
        rejects negative zoom levels.

        Raises:
            ConfigValidationError: If a required option is missing or the
                source encoding is not recognised
        """
        if not source_path:
            raise ConfigValidationError("--sFile is required.")
        if not output_dir:
            raise ConfigValidationError("--oDir is required.")

        try:
            encoding = SourceEncoding(source_encoding)
        except ValueError:
            raise ConfigValidationError(
                "--sEncoding must be either 'mapbox' or 'terrarium'."
            ) from None

        return cls(
            source_path=str(source_path),
            output_dir=str(output_dir),
            increment=int(increment),
            source_max_zoom=int(source_max_zoom),
            source_encoding=encoding,
            output_max_zoom=int(output_max_zoom),
            output_min_zoom=int(output_min_zoom),
            verbose=bool(verbose)
        )

    def summary(self) -> Dict[str, Any]:
        """Banner fields, in the order they are reported."""
        return {
            "Source File": self.source_path,
            "Source Max Zoom": self.source_max_zoom,
            "Source Encoding": self.source_encoding.value,
            "Output Directory": self.output_dir,
            "Output Min Zoom": self.output_min_zoom,
            "Output Max Zoom": self.output_max_zoom,
            "Contour Increment": self.increment,
        }


@dataclass(frozen=True)
class RuntimeSettings:
    """How a batch run is executed."""
    worker_command: Tuple[str, ...] = DEFAULT_WORKER_COMMAND
    max_workers: int = DEFAULT_MAX_WORKERS
    worker_timeout: Optional[float] = None
    fail_on_worker_error: bool = False
    terminate_on_cancel: bool = True
    log_format: str = "console"
    pushgateway: Optional[str] = None

    def __post_init__(self):
        if not self.worker_command:
            raise ConfigValidationError("worker_command must not be empty")
        if self.max_workers < 1:
            raise ConfigValidationError("max_workers must be >= 1")
        if self.worker_timeout is not None and self.worker_timeout <= 0:
            raise ConfigValidationError("worker_timeout must be positive")
        if self.log_format not in LOG_FORMATS:
            raise ConfigValidationError(
                f"log_format must be one of {', '.join(LOG_FORMATS)}"
            )


def _settings_files():
    settings_files = [
        GLOB_DIR / "settings.toml",
        USER_DIR / "settings.toml",
        CURR_DIR / "settings.toml",
    ]
    extra_file = os.getenv("CONTOUR_TILES_SETTINGS_FILE_FOR_DYNACONF")
    if extra_file:
        settings_files.append(pathlib.Path(extra_file).absolute())
    return [str(path) for path in settings_files]


def build_settings() -> Dynaconf:
    """Create the Dynaconf settings object for the current environment."""
    return Dynaconf(
        merge_enabled=True,
        envvar_prefix="CONTOUR_TILES",
        settings_files=_settings_files(),
        environments=True,
        load_dotenv=True,
    )


def load_runtime_settings(settings: Optional[Dynaconf] = None) -> RuntimeSettings:
    """
    Map Dynaconf settings onto RuntimeSettings.

    Args:
        settings: Settings object to read; a fresh one is built when omitted

    Returns:
        Validated RuntimeSettings
    """
    if settings is None:
        settings = build_settings()

    command = settings.get("worker_command", DEFAULT_WORKER_COMMAND)
    if isinstance(command, str):
        command = command.split()

    timeout = settings.get("worker_timeout", None)

    try:
        max_workers = int(settings.get("max_workers", DEFAULT_MAX_WORKERS))
        worker_timeout = float(timeout) if timeout is not None else None
    except (TypeError, ValueError) as e:
        raise ConfigValidationError(f"Invalid runtime setting: {e}") from None

    return RuntimeSettings(
        worker_command=tuple(str(part) for part in command),
        max_workers=max_workers,
        worker_timeout=worker_timeout,
        fail_on_worker_error=bool(settings.get("fail_on_worker_error", False)),
        terminate_on_cancel=bool(settings.get("terminate_on_cancel", True)),
        log_format=str(settings.get("log_format", "console")).lower(),
        pushgateway=settings.get("pushgateway", None),
    )
