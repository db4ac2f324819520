from __future__ import annotations

import argparse
import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Optional

from .config import (
    DEFAULT_PAGE_TEMPLATE,
    DEFAULT_POST_DIRS,
    DEFAULT_TMPL_EXT,
    SiteConfig,
    config_from_args,
    load_config,
)
from .content import FORMAT_YAML, FRONT_MATTER_FORMATS, parse_front_matter
from .errors import ConfigError, OutputError, SiteError, TemplateError
from .pages import (
    ROLE_INDEX,
    ROLE_POST,
    BlogPostSummary,
    Page,
    TemplateTable,
    build_atom,
    build_page,
    build_section_index,
    build_sitemap,
    feed_url,
    page_urls,
    sort_summaries,
)
from .render import TemplateRegistry, copy_file, dispatch_page, render_markdown, write_text
from .utils import clean_output_dir, parse_bool, parse_int

logger = logging.getLogger(__name__)

MD_EXT = ".md"
EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


@dataclass
class DocumentOutcome:
    """What one unit of work produced, or why it failed."""

    source: str
    stage: str = "read"
    urls: list = field(default_factory=list)
    outputs: list = field(default_factory=list)
    summary: Optional[BlogPostSummary] = None
    index_page: Optional[Page] = None
    error: Optional[SiteError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BuildReport:
    outcomes: list = field(default_factory=list)
    summaries: list = field(default_factory=list)
    sitemap_path: Optional[Path] = None
    feed_path: Optional[Path] = None

    @property
    def failures(self) -> list:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def exit_code(self) -> int:
        return EXIT_OK if self.ok else EXIT_FAILED


@dataclass
class SourceTree:
    documents: list = field(default_factory=list)
    templates: list = field(default_factory=list)
    assets: list = field(default_factory=list)
    ignored: list = field(default_factory=list)


def scan_source(config: SiteConfig) -> SourceTree:
    """Classify every file below the source root, in sorted order."""
    tree = SourceTree()
    dst_resolved = config.dst.resolve()
    for path in sorted(config.src.rglob("*"), key=lambda p: p.as_posix()):
        if not path.is_file():
            continue
        resolved = path.resolve()
        if resolved == dst_resolved or dst_resolved in resolved.parents:
            continue
        rel = PurePosixPath(path.relative_to(config.src).as_posix())
        if path.suffix.lower() in config.ignore_ext:
            tree.ignored.append(rel)
        elif path.name.endswith(config.tmpl_ext):
            tree.templates.append(path)
        elif path.suffix == MD_EXT:
            tree.documents.append(rel)
        else:
            tree.assets.append(rel)
    return tree


def fail(outcome: DocumentOutcome, exc: SiteError) -> DocumentOutcome:
    outcome.error = exc
    logger.error("%s: %s failed (%s): %s", outcome.source, outcome.stage, type(exc).__name__, exc)
    return outcome


def process_document(
    source: PurePosixPath,
    config: SiteConfig,
    registry: TemplateRegistry,
    table: TemplateTable,
) -> DocumentOutcome:
    """Parse, render and dispatch one document.

    Post directory index documents are only parsed here; they are rendered
    once every post summary is known.
    """
    outcome = DocumentOutcome(source=source.as_posix())
    path = config.src.joinpath(*source.parts)
    try:
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise OutputError(f"cannot read document: {exc}", path=str(path), stage="read") from exc
        outcome.stage = "parse"
        front, body = parse_front_matter(raw, config.front_matter, source=outcome.source)
        outcome.stage = "render"
        page = build_page(source, front, render_markdown(body), config, table)
        if page.role == ROLE_INDEX:
            outcome.index_page = page
            outcome.stage = "done"
            return outcome
        outcome.stage = "template"
        outcome.outputs = dispatch_page(registry, page, config.dst, config.site_context())
    except SiteError as exc:
        return fail(outcome, exc)
    outcome.urls = page_urls(page)
    if page.role == ROLE_POST:
        outcome.summary = page.summary()
    outcome.stage = "done"
    logger.debug("%s -> %s (%s)", outcome.source, ", ".join(str(p) for p in outcome.outputs), page.template)
    return outcome


def copy_asset(source: PurePosixPath, config: SiteConfig) -> DocumentOutcome:
    outcome = DocumentOutcome(source=source.as_posix(), stage="copy")
    dest = config.dst.joinpath(*source.parts)
    try:
        copy_file(config.src.joinpath(*source.parts), dest)
    except SiteError as exc:
        return fail(outcome, exc)
    outcome.outputs = [dest]
    outcome.stage = "done"
    return outcome


def render_section_index(
    directory: str,
    index_page: Optional[Page],
    summaries: list,
    config: SiteConfig,
    registry: TemplateRegistry,
    table: TemplateTable,
) -> DocumentOutcome:
    page = build_section_index(PurePosixPath(directory), index_page, summaries, config, table)
    outcome = DocumentOutcome(source=page.source.as_posix(), stage="template")
    try:
        outcome.outputs = dispatch_page(registry, page, config.dst, config.site_context())
    except SiteError as exc:
        return fail(outcome, exc)
    outcome.urls = page_urls(page)
    outcome.stage = "done"
    return outcome


def build_site(config: SiteConfig, project_root: Optional[Path] = None) -> BuildReport:
    if config.clean:
        clean_output_dir(config.dst, project_root or Path.cwd())

    tree = scan_source(config)
    logger.info(
        "Found %d documents, %d templates, %d files to copy in %s",
        len(tree.documents),
        len(tree.templates),
        len(tree.assets),
        config.src,
    )
    registry = TemplateRegistry.from_paths(tree.templates, config.tmpl_ext)
    table = TemplateTable.from_config(config)

    workers = min(config.worker_count, max(1, len(tree.documents) + len(tree.assets)))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        outcomes = list(executor.map(lambda src: process_document(src, config, registry, table), tree.documents))
        outcomes.extend(executor.map(lambda src: copy_asset(src, config), tree.assets))

    report = BuildReport(outcomes=outcomes)
    sections: dict[str, list] = {}
    index_pages: dict[str, Page] = {}
    urls: list[str] = []
    for outcome in outcomes:
        if not outcome.ok:
            continue
        urls.extend(outcome.urls)
        if outcome.summary is not None:
            sections.setdefault(outcome.summary.directory, []).append(outcome.summary)
        if outcome.index_page is not None:
            index_pages[outcome.index_page.source.parent.as_posix()] = outcome.index_page

    for directory in sorted(set(sections) | set(index_pages)):
        outcome = render_section_index(
            directory, index_pages.get(directory), sections.get(directory, []), config, registry, table
        )
        report.outcomes.append(outcome)
        urls.extend(outcome.urls)

    report.summaries = sort_summaries(summary for items in sections.values() for summary in items)
    report.feed_path = config.dst / config.feed_name
    write_text(report.feed_path, build_atom(report.summaries, config))
    urls.append(feed_url(config))
    report.sitemap_path = config.dst / config.sitemap_name
    write_text(report.sitemap_path, build_sitemap(urls))

    logger.info(
        "Rendered %d pages, %d posts, %d failures",
        sum(1 for o in report.outcomes if o.ok and o.urls),
        len(report.summaries),
        len(report.failures),
    )
    if report.failures:
        logger.error("Failed: %s", ", ".join(f"{o.source} ({o.stage})" for o in report.failures))
    return report


def build_parser(config: dict, config_path: str) -> argparse.ArgumentParser:
    def cfg_value(key: str, default: object) -> object:
        value = config.get(key)
        return default if value is None else value

    def cfg_str(key: str, default: str) -> str:
        value = cfg_value(key, default)
        if isinstance(value, (list, tuple)):
            return ",".join(str(item) for item in value)
        return str(value)

    def cfg_bool(key: str, default: bool) -> bool:
        value = cfg_value(key, default)
        return parse_bool(value) if value is not None else default

    def cfg_int(key: str, default: int) -> int:
        value = cfg_value(key, default)
        return parse_int(value, default)

    parser = argparse.ArgumentParser(description="Render a Markdown source tree into a static site.")
    parser.add_argument("--config", default=config_path, help="Path to site config file (TOML/YAML/JSON).")
    parser.add_argument("--src", default=cfg_str("src", "src"), help="Source directory.")
    parser.add_argument("--dst", default=cfg_str("dst", "dst"), help="Output directory.")
    parser.add_argument(
        "--base-url",
        default=cfg_str("base_url", ""),
        help="Absolute site URL used for canonical and AMP links.",
    )
    parser.add_argument(
        "--ignore-ext",
        default=cfg_str("ignore_ext", ""),
        help="Comma separated extensions that are neither rendered nor copied.",
    )
    parser.add_argument(
        "--tmpl-ext",
        default=cfg_str("tmpl_ext", DEFAULT_TMPL_EXT),
        help="Extension of template files inside the source tree.",
    )
    parser.add_argument("--ga-id", default=cfg_str("ga_id", ""), help="Analytics ID passed to every page.")
    parser.add_argument(
        "--front-matter",
        default=cfg_str("front_matter", FORMAT_YAML),
        choices=FRONT_MATTER_FORMATS,
        help="Front matter syntax of the documents.",
    )
    parser.add_argument(
        "--post-dirs",
        default=cfg_str("post_dirs", ",".join(DEFAULT_POST_DIRS)),
        help="Comma separated directory names holding dated posts.",
    )
    parser.add_argument(
        "--page-template",
        default=cfg_str("page_template", DEFAULT_PAGE_TEMPLATE),
        help="Template used for documents outside post directories.",
    )
    parser.add_argument(
        "--amp",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("amp", True),
        help="Render AMP variants under amp/.",
    )
    parser.add_argument(
        "--workers",
        default=cfg_int("workers", 0),
        type=int,
        help="Number of worker threads (0 = auto).",
    )
    parser.add_argument(
        "--clean",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("clean", False),
        help="Clean output directory before build.",
    )
    parser.add_argument("--feed-title", default=cfg_str("feed_title", ""), help="Atom feed title.")
    parser.add_argument("--feed-id", default=cfg_str("feed_id", ""), help="Atom feed ID.")
    parser.add_argument("--author-name", default=cfg_str("author_name", ""), help="Feed author name.")
    parser.add_argument("--author-uri", default=cfg_str("author_uri", ""), help="Feed author URI.")
    parser.add_argument("--author-email", default=cfg_str("author_email", ""), help="Feed author email.")
    parser.add_argument("--log-level", default=cfg_str("log_level", "INFO"), help="Logging level.")
    return parser


def main(argv: Optional[list] = None) -> int:
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument(
        "--config",
        default="site.toml",
        help="Path to site config file (TOML/YAML/JSON).",
    )
    pre_args, _ = pre_parser.parse_known_args(argv)
    try:
        config = load_config(Path(pre_args.config))
    except ConfigError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    args = build_parser(config, pre_args.config).parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    start = time.perf_counter()
    try:
        site_config = config_from_args(args, overrides=config.get("templates") or {})
        report = build_site(site_config)
    except (ConfigError, TemplateError) as exc:
        logger.error("%s: %s", exc.stage, exc)
        return EXIT_CONFIG
    except OutputError as exc:
        logger.error("%s: %s", exc.stage, exc)
        return EXIT_FAILED
    elapsed = time.perf_counter() - start
    print(f"Build completed in {elapsed:.2f}s.")
    print(f"Site generated in: {site_config.dst}")
    if not report.ok:
        print(f"{len(report.failures)} file(s) failed, see the log above.", file=sys.stderr)
    return report.exit_code
