from __future__ import annotations

import dataclasses
import logging
import shutil
from pathlib import Path, PurePosixPath
from typing import Iterable, Optional

import jinja2
import markdown

from .errors import OutputError, TemplateError
from .urls import AMP_SEGMENT

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = ["tables", "fenced_code", "def_list", "pymdownx.tilde", "pymdownx.magiclink"]
MARKDOWN_EXTENSION_CONFIGS = {
    # Only ~~strikethrough~~; a single ~ stays literal.
    "pymdownx.tilde": {"subscript": False},
}


def render_markdown(body: str) -> str:
    """Render a Markdown body with the common extension profile."""
    # Markdown instances keep state between calls, so each document gets its own.
    md = markdown.Markdown(
        extensions=MARKDOWN_EXTENSIONS,
        extension_configs=MARKDOWN_EXTENSION_CONFIGS,
    )
    return md.convert(body)


class TemplateRegistry:
    """Named Jinja2 templates, compiled once and only read afterwards."""

    def __init__(self, sources: dict[str, str], origins: Optional[dict[str, str]] = None):
        self.origins = dict(origins or {})
        self.env = jinja2.Environment(
            loader=jinja2.DictLoader(dict(sources)),
            autoescape=False,
            keep_trailing_newline=True,
        )
        self._templates: dict[str, jinja2.Template] = {}
        for name in sorted(sources):
            try:
                self._templates[name] = self.env.get_template(name)
            except jinja2.TemplateSyntaxError as exc:
                raise TemplateError(
                    f"syntax error in template {name!r} line {exc.lineno}: {exc.message}",
                    path=self.origins.get(name, name),
                    stage="load",
                ) from exc

    @classmethod
    def from_paths(cls, paths: Iterable[Path], extension: str) -> "TemplateRegistry":
        sources: dict[str, str] = {}
        origins: dict[str, str] = {}
        for path in sorted(paths, key=lambda p: p.as_posix()):
            name = path.name[: -len(extension)] if path.name.endswith(extension) else path.stem
            if name in sources:
                raise TemplateError(
                    f"template {name!r} is also defined in {origins[name]}", path=str(path), stage="load"
                )
            try:
                sources[name] = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise TemplateError(f"cannot read template: {exc}", path=str(path), stage="load") from exc
            origins[name] = str(path)
        logger.debug("Loaded %d templates: %s", len(sources), ", ".join(sorted(sources)))
        return cls(sources, origins)

    @property
    def names(self) -> list[str]:
        return sorted(self._templates)

    def __contains__(self, name: str) -> bool:
        return name in self._templates

    def render(self, name: str, context: dict, source: str = "") -> str:
        template = self._templates.get(name)
        if template is None:
            raise TemplateError(f"template {name!r} is not registered", path=source or None)
        try:
            return template.render(**context)
        except jinja2.TemplateError as exc:
            raise TemplateError(f"template {name!r} failed: {exc}", path=source or None) from exc
        except Exception as exc:
            # Errors raised by expressions and filters while the template runs.
            raise TemplateError(
                f"template {name!r} failed: {type(exc).__name__}: {exc}", path=source or None
            ) from exc


def output_path(dst: Path, source: PurePosixPath, amp: bool = False) -> Path:
    parts = source.with_suffix(".html").parts
    if amp:
        parts = (AMP_SEGMENT, *parts)
    return dst.joinpath(*parts)


def dispatch_page(registry: TemplateRegistry, page, dst: Path, site: dict) -> list[Path]:
    """Render ``page`` through its template, plus its AMP variant when enabled.

    Both variants are rendered before anything is written, so a broken
    template leaves no partial output behind.
    """
    variants = [(page, output_path(dst, page.source))]
    if page.amp_enabled:
        variants.append((dataclasses.replace(page, amp=True), output_path(dst, page.source, amp=True)))
    rendered = []
    for variant, path in variants:
        html = registry.render(page.template, {**variant.context(), "site": site}, source=page.source.as_posix())
        rendered.append((path, html))
    for path, html in rendered:
        write_text(path, html)
    return [path for path, _ in rendered]


def write_text(path: Path, text: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise OutputError(f"cannot write output: {exc}", path=str(path)) from exc


def copy_file(source: Path, dest: Path) -> None:
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, dest)
    except OSError as exc:
        raise OutputError(f"cannot copy to {dest}: {exc}", path=str(source), stage="copy") from exc
