from __future__ import annotations

import datetime as dt
import xml.etree.ElementTree as etree
from dataclasses import dataclass, field, fields
from pathlib import PurePosixPath
from typing import Iterable, Optional

from .config import SiteConfig
from .content import FrontMatter
from .urls import amp_url, canonical_url, site_url
from .utils import date_prefix, iso_date, midnight_utc

ROLE_POST = "post"
ROLE_INDEX = "index"
ROLE_PAGE = "page"
INDEX_STEM = "index"
ATOM_NS = "http://www.w3.org/2005/Atom"


@dataclass(frozen=True)
class TemplateTable:
    """Maps a document path to its role and template name.

    Documents directly inside a post directory use ``<dir>-post``, the
    directory's own ``index.md`` uses ``<dir>-index`` and everything else the
    generic page template. ``overrides`` maps a document path (with or without
    ``.md``) or a directory prefix to a template name and wins over the table.
    """

    post_dirs: frozenset = frozenset({"blog"})
    page_template: str = "page"
    overrides: dict = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: SiteConfig) -> "TemplateTable":
        overrides = {str(key).strip("/"): str(value) for key, value in config.template_overrides.items()}
        return cls(post_dirs=frozenset(config.post_dirs), page_template=config.page_template, overrides=overrides)

    def role(self, source: PurePosixPath) -> str:
        if source.parent.name and source.parent.name in self.post_dirs:
            return ROLE_INDEX if source.stem == INDEX_STEM else ROLE_POST
        return ROLE_PAGE

    def override_for(self, source: PurePosixPath) -> Optional[str]:
        candidates = [source.with_suffix("").as_posix(), source.as_posix()]
        candidates.extend(parent.as_posix() for parent in source.parents if parent.as_posix() != ".")
        for candidate in candidates:
            if candidate in self.overrides:
                return self.overrides[candidate]
        return None

    def template_for(self, source: PurePosixPath) -> str:
        override = self.override_for(source)
        if override:
            return override
        role = self.role(source)
        if role == ROLE_PAGE:
            return self.page_template
        return f"{source.parent.name}-{role}"


@dataclass(frozen=True)
class BlogPostSummary:
    title: str
    date: str
    slug: str
    directory: str
    amp_enabled: bool = True

    @property
    def url(self) -> str:
        return PurePosixPath(self.directory, self.slug).as_posix()

    @property
    def segments(self) -> tuple:
        return PurePosixPath(self.directory, self.slug).parts


@dataclass
class Page:
    source: PurePosixPath
    template: str
    role: str
    url_canonical: str
    url_amp: str
    title: str = ""
    description: str = ""
    style: str = ""
    header: str = ""
    main: str = ""
    date: str = ""
    ga_id: str = ""
    amp: bool = False
    amp_enabled: bool = True
    posts: list = field(default_factory=list)

    def context(self) -> dict:
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["source"] = self.source.as_posix()
        data["page"] = self
        return data

    def summary(self) -> BlogPostSummary:
        return BlogPostSummary(
            title=self.title,
            date=self.date,
            slug=self.source.stem,
            directory=self.source.parent.as_posix(),
            amp_enabled=self.amp_enabled,
        )


def url_segments(source: PurePosixPath) -> tuple:
    return source.with_suffix("").parts


def build_page(
    source: PurePosixPath,
    front: FrontMatter,
    main: str,
    config: SiteConfig,
    table: TemplateTable,
) -> Page:
    segments = url_segments(source)
    role = table.role(source)
    date = front.date
    if role == ROLE_POST and not date:
        date = date_prefix(source.stem)
    amp_enabled = config.amp if front.amp is None else (config.amp and front.amp)
    return Page(
        source=source,
        template=table.template_for(source),
        role=role,
        url_canonical=canonical_url(config.base_url, segments),
        url_amp=amp_url(config.base_url, segments),
        title=front.title,
        description=front.description,
        style=front.style,
        header=front.header,
        main=main,
        date=date,
        ga_id=front.ga_id or config.ga_id,
        amp_enabled=amp_enabled,
    )


def page_urls(page: Page) -> list[str]:
    urls = [page.url_canonical]
    if page.amp_enabled:
        urls.append(page.url_amp)
    return urls


def sort_summaries(summaries: Iterable[BlogPostSummary]) -> list[BlogPostSummary]:
    """Newest first; equal dates fall back to URL, also descending."""
    return sorted(summaries, key=lambda s: (s.date, s.url), reverse=True)


def build_section_index(
    directory: PurePosixPath,
    index_page: Optional[Page],
    summaries: Iterable[BlogPostSummary],
    config: SiteConfig,
    table: TemplateTable,
) -> Page:
    if index_page is None:
        source = directory / f"{INDEX_STEM}.md"
        index_page = build_page(source, FrontMatter(title=directory.name), "", config, table)
    index_page.posts = sort_summaries(summaries)
    return index_page


def feed_url(config: SiteConfig) -> str:
    return site_url(config.base_url, [config.feed_name])


def _link(parent: etree.Element, rel: str, href: str, type_: str) -> None:
    etree.SubElement(parent, "link", {"rel": rel, "href": href, "type": type_})


def _author(parent: etree.Element, config: SiteConfig) -> None:
    author = etree.SubElement(parent, "author")
    etree.SubElement(author, "name").text = config.author_name or config.host
    etree.SubElement(author, "uri").text = config.author_uri or site_url(config.base_url, [])
    if config.author_email:
        etree.SubElement(author, "email").text = config.author_email


def build_atom(summaries: list[BlogPostSummary], config: SiteConfig, now: Optional[dt.datetime] = None) -> str:
    """Serialize the Atom feed for ``summaries``, which must already be sorted."""
    self_url = feed_url(config)
    dated = [s.date for s in summaries if s.date]
    if dated:
        updated = midnight_utc(max(dated))
    else:
        updated = iso_date(now or dt.datetime.now(dt.timezone.utc))

    directories = sorted({s.directory for s in summaries})
    if len(directories) == 1:
        alternate = canonical_url(config.base_url, [*PurePosixPath(directories[0]).parts, INDEX_STEM])
    else:
        alternate = site_url(config.base_url, [])

    feed = etree.Element("feed", {"xmlns": ATOM_NS})
    etree.SubElement(feed, "title").text = config.feed_title or config.host
    etree.SubElement(feed, "id").text = config.feed_id or site_url(config.base_url, [])
    _link(feed, "self", self_url, "application/atom+xml")
    _link(feed, "alternate", alternate, "text/html")
    etree.SubElement(feed, "updated").text = updated
    _author(feed, config)

    for summary in summaries:
        html_url = canonical_url(config.base_url, summary.segments)
        stamp = midnight_utc(summary.date) if summary.date else updated
        entry = etree.SubElement(feed, "entry")
        etree.SubElement(entry, "title").text = summary.title
        etree.SubElement(entry, "id").text = html_url
        _link(entry, "alternate", html_url, "text/html")
        if summary.amp_enabled:
            _link(entry, "amphtml", amp_url(config.base_url, summary.segments), "text/html")
        if summary.date:
            etree.SubElement(entry, "published").text = stamp
        etree.SubElement(entry, "updated").text = stamp
        _author(entry, config)
        etree.SubElement(entry, "summary", {"type": "text"}).text = summary.title

    etree.indent(feed, space="    ")
    body = etree.tostring(feed, encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'


def build_sitemap(urls: Iterable[str]) -> str:
    lines = sorted(set(urls))
    return "\n".join(lines) + "\n" if lines else ""
