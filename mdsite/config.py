from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

import yaml

from .content import FRONT_MATTER_FORMATS, FORMAT_YAML
from .errors import ConfigError
from .urls import is_absolute_http, site_url
from .utils import parse_list

try:
    import tomllib as toml
except ImportError:
    import tomli as toml

DEFAULT_POST_DIRS = ("blog",)
DEFAULT_PAGE_TEMPLATE = "page"
DEFAULT_TMPL_EXT = ".j2"
MAX_WORKERS = 32


def load_config(path: Path) -> dict:
    if not path.exists():
        return {}
    suffix = path.suffix.lower()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read config file: {exc}", path=str(path)) from exc
    if suffix == ".toml":
        try:
            data = toml.loads(text)
        except toml.TOMLDecodeError as exc:
            raise ConfigError(f"invalid TOML: {exc}", path=str(path)) from exc
        return data
    if suffix in {".yml", ".yaml"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"invalid YAML: {exc}", path=str(path)) from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError("YAML config must be a mapping", path=str(path))
        return data
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON: {exc}", path=str(path)) from exc
    if not isinstance(data, dict):
        raise ConfigError("JSON config must be an object", path=str(path))
    return data


def normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    if ext and not ext.startswith("."):
        ext = f".{ext}"
    return ext


@dataclass(frozen=True)
class SiteConfig:
    """Everything a build needs, passed explicitly to each stage."""

    src: Path
    dst: Path
    base_url: str
    ignore_ext: frozenset = frozenset()
    tmpl_ext: str = DEFAULT_TMPL_EXT
    ga_id: str = ""
    front_matter: str = FORMAT_YAML
    post_dirs: frozenset = frozenset(DEFAULT_POST_DIRS)
    page_template: str = DEFAULT_PAGE_TEMPLATE
    template_overrides: dict = field(default_factory=dict)
    amp: bool = True
    workers: int = 0
    clean: bool = False
    feed_name: str = "feed.atom"
    sitemap_name: str = "sitemap.txt"
    feed_title: str = ""
    feed_id: str = ""
    author_name: str = ""
    author_uri: str = ""
    author_email: str = ""

    @property
    def host(self) -> str:
        return urlsplit(self.base_url).hostname or ""

    @property
    def worker_count(self) -> int:
        workers = self.workers if self.workers > 0 else (os.cpu_count() or 1)
        return max(1, min(workers, MAX_WORKERS))

    def site_context(self) -> dict:
        return {
            "base_url": site_url(self.base_url, []),
            "feed_url": site_url(self.base_url, [self.feed_name]),
            "ga_id": self.ga_id,
            "title": self.feed_title or self.host,
        }


def validate_config(config: SiteConfig) -> SiteConfig:
    if not config.src.exists():
        raise ConfigError("source directory not found", path=str(config.src))
    if not config.src.is_dir():
        raise ConfigError("source root is not a directory", path=str(config.src))
    if not config.base_url:
        raise ConfigError("a base URL is required")
    if not is_absolute_http(config.base_url):
        raise ConfigError(f"base URL must be an absolute http(s) URL: {config.base_url!r}")
    if config.front_matter not in FRONT_MATTER_FORMATS:
        raise ConfigError(
            f"unknown front matter format {config.front_matter!r}, expected one of {', '.join(FRONT_MATTER_FORMATS)}"
        )
    if not config.tmpl_ext or config.tmpl_ext == ".md":
        raise ConfigError(f"invalid template extension: {config.tmpl_ext!r}")
    if not isinstance(config.template_overrides, dict):
        raise ConfigError("templates must be a mapping of paths to template names")
    return config


def config_from_args(args: object, overrides: Optional[dict] = None) -> SiteConfig:
    """Build a SiteConfig from parsed command line arguments."""
    templates = overrides if overrides is not None else {}
    config = SiteConfig(
        src=Path(getattr(args, "src")),
        dst=Path(getattr(args, "dst")),
        base_url=(getattr(args, "base_url", "") or "").strip(),
        ignore_ext=frozenset(normalize_extension(e) for e in parse_list(getattr(args, "ignore_ext", ""))),
        tmpl_ext=normalize_extension(getattr(args, "tmpl_ext", DEFAULT_TMPL_EXT) or ""),
        ga_id=(getattr(args, "ga_id", "") or "").strip(),
        front_matter=(getattr(args, "front_matter", FORMAT_YAML) or "").strip().lower(),
        post_dirs=frozenset(parse_list(getattr(args, "post_dirs", DEFAULT_POST_DIRS))),
        page_template=getattr(args, "page_template", DEFAULT_PAGE_TEMPLATE) or DEFAULT_PAGE_TEMPLATE,
        template_overrides=templates,
        amp=bool(getattr(args, "amp", True)),
        workers=int(getattr(args, "workers", 0) or 0),
        clean=bool(getattr(args, "clean", False)),
        feed_title=getattr(args, "feed_title", "") or "",
        feed_id=getattr(args, "feed_id", "") or "",
        author_name=getattr(args, "author_name", "") or "",
        author_uri=getattr(args, "author_uri", "") or "",
        author_email=getattr(args, "author_email", "") or "",
    )
    return validate_config(config)
