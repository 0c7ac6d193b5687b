"""Configuration loader for octofeed."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants


@dataclass(slots=True)
class OctoPrintConfig:
    url: str = (
        f"http://{constants.DEFAULT_OCTOPRINT_HOST}:{constants.DEFAULT_OCTOPRINT_PORT}"
    )
    api_key: Optional[str] = None

    def api_url(self, path: str, *, api: bool = True) -> str:
        """Build an absolute backend URL, under ``/api`` unless told otherwise."""

        base = self.url.rstrip("/")
        path = path.lstrip("/")
        if api:
            return f"{base}/api/{path}"
        return f"{base}/{path}"

    def http_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key
        return headers


@dataclass(slots=True)
class FeatureConfig:
    display_layer_progress: bool = False


@dataclass(slots=True)
class FilamentConfig:
    diameter_mm: float = 1.75
    density: float = 1.25  # g/cm³


@dataclass(slots=True)
class ResilienceConfig:
    credential_retry_fast_seconds: float = 5.0
    credential_retry_slow_seconds: float = 15.0
    credential_retry_fast_attempts: int = 6
    request_timeout_seconds: float = 10.0


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = constants.DEFAULT_LOG_PATH
    log_network: bool = False


@dataclass(slots=True)
class FeedConfig:
    octoprint: OctoPrintConfig
    features: FeatureConfig
    filament: FilamentConfig
    resilience: ResilienceConfig
    logging: LoggingConfig
    raw: ConfigParser
    path: Path

    @property
    def display_layer_progress(self) -> bool:
        return self.features.display_layer_progress


def default_config() -> FeedConfig:
    """Build a configuration holding only defaults, without touching disk."""

    return FeedConfig(
        octoprint=OctoPrintConfig(),
        features=FeatureConfig(),
        filament=FilamentConfig(),
        resilience=ResilienceConfig(),
        logging=LoggingConfig(),
        raw=ConfigParser(),
        path=constants.DEFAULT_CONFIG_PATH,
    )


def load_config(path: Optional[Path] = None) -> FeedConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "octoprint": {
                "url": f"http://{constants.DEFAULT_OCTOPRINT_HOST}:{constants.DEFAULT_OCTOPRINT_PORT}",
            },
            "features": {
                "display_layer_progress": "false",
            },
            "filament": {
                "diameter_mm": "1.75",
                "density": "1.25",
            },
            "resilience": {
                "credential_retry_fast_seconds": "5.0",
                "credential_retry_slow_seconds": "15.0",
                "credential_retry_fast_attempts": "6",
                "request_timeout_seconds": "10.0",
            },
            "logging": {
                "level": "INFO",
                "path": str(constants.DEFAULT_LOG_PATH),
                "log_network": "false",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    octoprint = OctoPrintConfig(
        url=parser.get("octoprint", "url"),
        api_key=parser.get("octoprint", "api_key", fallback=None) or None,
    )

    features = FeatureConfig(
        display_layer_progress=parser.getboolean(
            "features", "display_layer_progress", fallback=False
        ),
    )

    filament_defaults = FilamentConfig()
    try:
        diameter = parser.getfloat(
            "filament", "diameter_mm", fallback=filament_defaults.diameter_mm
        )
    except ValueError:
        diameter = filament_defaults.diameter_mm
    try:
        density = parser.getfloat(
            "filament", "density", fallback=filament_defaults.density
        )
    except ValueError:
        density = filament_defaults.density

    filament = FilamentConfig(
        diameter_mm=max(0.0, diameter),
        density=max(0.0, density),
    )

    resilience = ResilienceConfig(
        credential_retry_fast_seconds=max(
            0.0,
            parser.getfloat(
                "resilience", "credential_retry_fast_seconds", fallback=5.0
            ),
        ),
        credential_retry_slow_seconds=max(
            0.0,
            parser.getfloat(
                "resilience", "credential_retry_slow_seconds", fallback=15.0
            ),
        ),
        credential_retry_fast_attempts=max(
            0,
            parser.getint("resilience", "credential_retry_fast_attempts", fallback=6),
        ),
        request_timeout_seconds=max(
            0.1,
            parser.getfloat("resilience", "request_timeout_seconds", fallback=10.0),
        ),
    )

    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(
            parser.get("logging", "path", fallback=str(constants.DEFAULT_LOG_PATH))
        ).expanduser(),
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    return FeedConfig(
        octoprint=octoprint,
        features=features,
        filament=filament,
        resilience=resilience,
        logging=logging_config,
        raw=parser,
        path=config_path,
    )


def save_config(config: FeedConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
