from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Optional, Union

import yaml

from .errors import ParseError
from .utils import parse_bool

logger = logging.getLogger(__name__)

FORMAT_YAML = "yaml"
FORMAT_KEYVALUE = "keyvalue"
FRONT_MATTER_FORMATS = (FORMAT_YAML, FORMAT_KEYVALUE)
DELIMITER = "---"

KEY_ALIASES = {
    "title": "title",
    "date": "date",
    "description": "description",
    "desc": "description",
    "style": "style",
    "header": "header",
    "gaid": "ga_id",
    "ga_id": "ga_id",
    "amp": "amp",
}


@dataclass(frozen=True)
class FrontMatter:
    title: str = ""
    date: str = ""
    description: str = ""
    style: str = ""
    header: str = ""
    ga_id: str = ""
    amp: Optional[bool] = None

    def is_empty(self) -> bool:
        return self == FrontMatter()


def _stringify(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _normalize_date(value: object, source: str) -> str:
    if value is None:
        return ""
    if isinstance(value, dt.datetime):
        return value.date().isoformat()
    if isinstance(value, dt.date):
        return value.isoformat()
    text = str(value).strip()
    if not text:
        return ""
    try:
        return dt.date.fromisoformat(text[:10]).isoformat()
    except ValueError as exc:
        raise ParseError(f"date {text!r} does not start with YYYY-MM-DD", path=source) from exc


def build_front_matter(meta: dict, source: str = "") -> FrontMatter:
    """Map raw header keys onto FrontMatter, warning about unknown ones."""
    fields: dict[str, object] = {}
    for raw_key, value in meta.items():
        key = str(raw_key).strip().lower()
        field_name = KEY_ALIASES.get(key)
        if field_name is None:
            logger.warning("%s: ignoring unknown front matter key %r", source or "<document>", raw_key)
            continue
        if field_name == "amp":
            fields["amp"] = parse_bool(value)
        elif field_name == "date":
            fields["date"] = _normalize_date(value, source)
        else:
            fields[field_name] = _stringify(value)
    return FrontMatter(**fields)


def _split_yaml(text: str, source: str) -> tuple[dict, str]:
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != DELIMITER:
        return {}, text
    end = None
    for i in range(1, len(lines)):
        if lines[i].strip() == DELIMITER:
            end = i
            break
    if end is None:
        raise ParseError("front matter opened with --- but never closed", path=source)
    block = "".join(lines[1:end])
    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as exc:
        raise ParseError(f"invalid YAML front matter: {exc}", path=source) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ParseError("YAML front matter must be a mapping", path=source)
    return data, "".join(lines[end + 1 :])


def _split_keyvalue(text: str, source: str) -> tuple[dict, str]:
    lines = text.splitlines(keepends=True)
    end = None
    for i, line in enumerate(lines):
        if line.strip() == DELIMITER:
            end = i
            break
    if end is None:
        return {}, text
    meta = {}
    for lineno, line in enumerate(lines[:end], start=1):
        line = line.strip()
        if not line:
            continue
        if "=" not in line:
            raise ParseError(f"header line {lineno} is not 'key = value'", path=source)
        key, value = line.split("=", 1)
        meta[key.strip()] = value.strip()
    return meta, "".join(lines[end + 1 :])


def parse_front_matter(
    raw: Union[bytes, str], fmt: str = FORMAT_YAML, source: str = ""
) -> tuple[FrontMatter, str]:
    """Split a document into its front matter and Markdown body.

    ``yaml`` expects a ``---`` delimited block at the very top of the
    document. ``keyvalue`` expects ``key = value`` lines closed by a ``---``
    line. A document without the delimiter is all body.
    """
    if isinstance(raw, bytes):
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(f"document is not valid UTF-8: {exc}", path=source) from exc
    else:
        text = raw
    text = text.lstrip("\ufeff")
    if fmt == FORMAT_YAML:
        meta, body = _split_yaml(text, source)
    elif fmt == FORMAT_KEYVALUE:
        meta, body = _split_keyvalue(text, source)
    else:
        raise ValueError(f"unknown front matter format: {fmt}")
    return build_front_matter(meta, source), body
