from __future__ import annotations

import datetime as dt
import logging
import re
import shutil
from pathlib import Path

from .errors import ConfigError

logger = logging.getLogger(__name__)

DATE_PREFIX_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")


def parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return False


def parse_int(value: object, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def parse_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [str(item).strip() for item in value]
    else:
        text = str(value).strip()
        if text.startswith("[") and text.endswith("]"):
            text = text[1:-1]
        items = [item.strip().strip("'\"") for item in text.split(",")]
    return [item for item in items if item]


def date_prefix(name: str) -> str:
    """Return the leading YYYY-MM-DD of a file name, or an empty string."""
    if not DATE_PREFIX_RE.match(name):
        return ""
    try:
        return dt.date.fromisoformat(name[:10]).isoformat()
    except ValueError:
        return ""


def midnight_utc(date_value: str) -> str:
    return f"{date_value}T00:00:00Z"


def iso_date(value: dt.datetime) -> str:
    value = value.astimezone(dt.timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def clean_output_dir(output_dir: Path, project_root: Path) -> None:
    if not output_dir.exists():
        return
    output_resolved = output_dir.resolve()
    root_resolved = project_root.resolve()
    if output_resolved == root_resolved:
        raise ConfigError("refusing to clean project root", path=str(output_dir))
    if not output_resolved.is_relative_to(root_resolved):
        raise ConfigError("refusing to clean output directory outside project root", path=str(output_dir))
    logger.info("Cleaning %s", output_dir)
    shutil.rmtree(output_dir)
