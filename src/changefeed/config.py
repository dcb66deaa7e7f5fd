"""Change feed processor configuration.

Loads from a YAML file with a single ``changefeed`` section:

    changefeed:
      cosmos:
        uri: ${COSMOS_URI}
        auth_key: ${COSMOS_AUTH_KEY}
        database: orders
        collection: events
      processor:
        batch_size: 100
        progress_interval_seconds: 5
        starting_position: beginning
        stopping_position: null

Environment variables are supported using ${VAR_NAME} and
${VAR_NAME:-default} syntax anywhere in the file.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict

import yaml
from dotenv import load_dotenv

from changefeed.position import ChangefeedPosition, PartitionPosition
from core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class StartingPosition(Enum):
    """Where a partition without a prior checkpoint starts reading."""

    BEGINNING = "beginning"


BEGINNING = StartingPosition.BEGINNING


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


@dataclass(frozen=True)
class CosmosEndpoint:
    """Cosmos DB account and collection whose change feed is processed.

    Either auth_key (master key) or use_aad_auth must be set.
    """

    uri: str
    database_name: str
    collection_name: str
    auth_key: str = field(default="", repr=False)
    use_aad_auth: bool = False
    timeout_seconds: float = 60.0

    def __post_init__(self) -> None:
        if not self.uri.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"Cosmos uri must start with http:// or https://, got: {self.uri!r}"
            )
        if not self.database_name or not self.collection_name:
            raise ConfigurationError("Cosmos database and collection names are required")
        if not self.auth_key and not self.use_aad_auth:
            raise ConfigurationError(
                "Cosmos endpoint requires auth_key or use_aad_auth: true"
            )
        if self.timeout_seconds <= 0:
            raise ConfigurationError(
                f"timeout_seconds must be positive, got {self.timeout_seconds}"
            )


@dataclass(frozen=True)
class ProcessorConfig:
    """Change feed processor settings.

    Attributes:
        batch_size: Max items fetched from a partition per request
        progress_interval_seconds: Interval between progress handler calls
        starting_position: BEGINNING, or a checkpoint to resume from.
            Partitions missing from the checkpoint start at the beginning.
        stopping_position: Optional checkpoint to stop at. Partitions missing
            from it are read without a stop point.
        channel_max_size: 0 for an unbounded handler->aggregator channel,
            otherwise the bound at which handlers wait for the aggregator
        strict_position_parsing: Raise PositionParseError on unparsable range
            bounds or continuation tokens instead of treating them as 0
    """

    batch_size: int = 100
    progress_interval_seconds: float = 5.0
    starting_position: StartingPosition | ChangefeedPosition = BEGINNING
    stopping_position: ChangefeedPosition | None = None
    channel_max_size: int = 0
    strict_position_parsing: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.batch_size, int) or self.batch_size <= 0:
            raise ConfigurationError(f"batch_size must be a positive integer, got {self.batch_size!r}")
        if self.progress_interval_seconds <= 0:
            raise ConfigurationError(
                f"progress_interval_seconds must be positive, got {self.progress_interval_seconds!r}"
            )
        if not isinstance(self.starting_position, (StartingPosition, ChangefeedPosition)):
            raise ConfigurationError(
                "starting_position must be BEGINNING or a ChangefeedPosition"
            )
        if self.stopping_position is not None and not isinstance(
            self.stopping_position, ChangefeedPosition
        ):
            raise ConfigurationError("stopping_position must be a ChangefeedPosition or None")
        if self.channel_max_size < 0:
            raise ConfigurationError(
                f"channel_max_size must be >= 0, got {self.channel_max_size}"
            )


def _as_bool(value: Any) -> bool:
    """Interpret YAML booleans and env-expanded strings such as "false"."""
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _parse_position(value: Any, field_name: str) -> ChangefeedPosition:
    """Build a ChangefeedPosition from a list of entries or a {partitions: [...]} mapping."""
    if isinstance(value, dict):
        value = value.get("partitions", [])
    if not isinstance(value, list):
        raise ConfigurationError(f"{field_name} must be a list of partition positions")
    try:
        return ChangefeedPosition(PartitionPosition.from_dict(item) for item in value)
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid {field_name}: {e}", cause=e) from e


def _parse_starting_position(value: Any) -> StartingPosition | ChangefeedPosition:
    if value is None or (isinstance(value, str) and value.lower() == BEGINNING.value):
        return BEGINNING
    return _parse_position(value, "starting_position")


def build_endpoint(data: Dict[str, Any]) -> CosmosEndpoint:
    try:
        timeout_seconds = float(data.get("timeout_seconds", 60.0))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid cosmos timeout_seconds: {e}", cause=e) from e
    return CosmosEndpoint(
        uri=str(data.get("uri", "")),
        database_name=str(data.get("database", "")),
        collection_name=str(data.get("collection", "")),
        auth_key=str(data.get("auth_key") or ""),
        use_aad_auth=_as_bool(data.get("use_aad_auth", False)),
        timeout_seconds=timeout_seconds,
    )


def build_processor_config(data: Dict[str, Any]) -> ProcessorConfig:
    stopping = data.get("stopping_position")
    try:
        return ProcessorConfig(
            batch_size=int(data.get("batch_size", 100)),
            progress_interval_seconds=float(data.get("progress_interval_seconds", 5.0)),
            starting_position=_parse_starting_position(data.get("starting_position")),
            stopping_position=(
                _parse_position(stopping, "stopping_position") if stopping is not None else None
            ),
            channel_max_size=int(data.get("channel_max_size", 0)),
            strict_position_parsing=_as_bool(data.get("strict_position_parsing", True)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid processor config: {e}", cause=e) from e


def load_config(
    config_path: Path,
    env_file: Path | None = None,
) -> tuple[CosmosEndpoint, ProcessorConfig]:
    """Load endpoint and processor settings from a YAML file.

    Args:
        config_path: YAML file with a ``changefeed`` section
        env_file: Optional .env file loaded before ${VAR} expansion

    Raises:
        ConfigurationError: If the file is missing or any value is invalid
    """
    if env_file is not None:
        load_dotenv(env_file)

    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    data = _expand_env_vars(load_yaml(config_path))
    section = data.get("changefeed")
    if not isinstance(section, dict):
        raise ConfigurationError(f"Missing 'changefeed' section in {config_path}")

    endpoint = build_endpoint(section.get("cosmos") or {})
    processor = build_processor_config(section.get("processor") or {})

    logger.debug(
        "Loaded change feed config",
        extra={
            "database": endpoint.database_name,
            "collection": endpoint.collection_name,
            "batch_size": processor.batch_size,
            "interval_seconds": processor.progress_interval_seconds,
        },
    )
    return endpoint, processor


__all__ = [
    "BEGINNING",
    "StartingPosition",
    "CosmosEndpoint",
    "ProcessorConfig",
    "load_config",
    "load_yaml",
    "build_endpoint",
    "build_processor_config",
]
