import json
import logging
from pathlib import Path

from pydantic import ValidationError

from slotwatch.errors import ConfigurationError
from slotwatch.models.schemas import Target, TargetConfig

logger = logging.getLogger(__name__)


def parse_targets(data: object) -> list[Target]:
    """
    Validate a decoded target file.

    Accepts either a bare list of targets or an object with a "targets" list.
    """
    if isinstance(data, list):
        data = {"targets": data}
    try:
        config = TargetConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid target configuration: {e}") from e
    if not config.targets:
        raise ConfigurationError("Target configuration contains no targets")
    return config.targets


def load_targets(path: str | Path) -> list[Target]:
    """Read and validate the target file; any problem raises ConfigurationError."""
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read target file {path}: {e}") from e
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Target file {path} is not valid JSON: {e}") from e
    targets = parse_targets(data)
    logger.info(f"Loaded {len(targets)} targets from {path}")
    return targets
