import itertools
import xml.etree.ElementTree as etree
from pathlib import Path, PurePosixPath

from mdsite.config import SiteConfig
from mdsite.content import FrontMatter, parse_front_matter
from mdsite.pages import (
    ROLE_INDEX,
    ROLE_PAGE,
    ROLE_POST,
    BlogPostSummary,
    TemplateTable,
    build_atom,
    build_page,
    build_section_index,
    build_sitemap,
    page_urls,
    sort_summaries,
)
from mdsite.render import render_markdown
from mdsite.urls import normalize_url

ATOM = "{http://www.w3.org/2005/Atom}"


def make_config(**kwargs) -> SiteConfig:
    options = dict(src=Path("src"), dst=Path("dst"), base_url="https://example.com")
    options.update(kwargs)
    return SiteConfig(**options)


def test_template_table_roles():
    table = TemplateTable()

    assert table.template_for(PurePosixPath("blog/2023-05-01-hello.md")) == "blog-post"
    assert table.role(PurePosixPath("blog/2023-05-01-hello.md")) == ROLE_POST
    assert table.template_for(PurePosixPath("blog/index.md")) == "blog-index"
    assert table.role(PurePosixPath("blog/index.md")) == ROLE_INDEX
    assert table.template_for(PurePosixPath("about.md")) == "page"
    assert table.template_for(PurePosixPath("index.md")) == "page"
    assert table.role(PurePosixPath("docs/guide.md")) == ROLE_PAGE


def test_template_table_uses_enclosing_directory():
    table = TemplateTable(post_dirs=frozenset({"blog", "notes"}))

    assert table.template_for(PurePosixPath("notes/2024-01-01-a.md")) == "notes-post"
    assert table.template_for(PurePosixPath("en/blog/2024-01-01-a.md")) == "blog-post"


def test_template_table_overrides_win():
    table = TemplateTable(overrides={"about": "about-page", "docs": "doc", "blog/special.md": "special"})

    assert table.template_for(PurePosixPath("about.md")) == "about-page"
    assert table.template_for(PurePosixPath("docs/a/b.md")) == "doc"
    assert table.template_for(PurePosixPath("blog/special.md")) == "special"
    assert table.template_for(PurePosixPath("blog/other.md")) == "blog-post"


def test_template_table_from_config():
    config = make_config(post_dirs=frozenset({"news"}), page_template="main", template_overrides={"/x/": "y"})
    table = TemplateTable.from_config(config)

    assert table.template_for(PurePosixPath("news/a.md")) == "news-post"
    assert table.template_for(PurePosixPath("a.md")) == "main"
    assert table.template_for(PurePosixPath("x/z.md")) == "y"


def test_build_page_hello_scenario():
    config = make_config()
    front, body = parse_front_matter("title = Hello\n---\n# Hi\n", "keyvalue")
    source = PurePosixPath("blog/2023-05-01-hello.md")

    page = build_page(source, front, render_markdown(body), config, TemplateTable())

    assert page.title == "Hello"
    assert page.date == "2023-05-01"
    assert "<h1>Hi</h1>" in page.main
    assert page.template == "blog-post"
    assert page.url_canonical == "https://example.com/blog/2023-05-01-hello"
    assert page.url_amp == "https://example.com/amp/blog/2023-05-01-hello"


def test_front_matter_date_wins_over_filename():
    page = build_page(
        PurePosixPath("blog/2023-05-01-hello.md"),
        FrontMatter(date="2024-02-02"),
        "",
        make_config(),
        TemplateTable(),
    )
    assert page.date == "2024-02-02"


def test_front_matter_datetime_gives_a_plain_post_date():
    front, _ = parse_front_matter("---\ndate: 2023-05-01 10:30:00\n---\n", "yaml")

    page = build_page(PurePosixPath("blog/2023-05-01-a.md"), front, "", make_config(), TemplateTable())

    assert page.date == "2023-05-01"
    assert page.summary().date == "2023-05-01"


def test_undated_post_and_pages_have_blank_date():
    table = TemplateTable()
    config = make_config()

    assert build_page(PurePosixPath("blog/hello.md"), FrontMatter(), "", config, table).date == ""
    assert build_page(PurePosixPath("2023-05-01-notes.md"), FrontMatter(), "", config, table).date == ""


def test_amp_url_shares_canonical_path():
    config = make_config(base_url="https://example.com/site")
    table = TemplateTable()
    for name in ["blog/2023-05-01-a.md", "blog/index.md", "index.md", "docs/deep/page.md"]:
        page = build_page(PurePosixPath(name), FrontMatter(), "", config, table)
        prefix = "https://example.com/site/"
        assert page.url_canonical.startswith(prefix)
        assert page.url_amp == prefix + "amp/" + page.url_canonical[len(prefix):]
        assert normalize_url(page.url_canonical) == page.url_canonical
        assert normalize_url(page.url_amp) == page.url_amp


def test_empty_front_matter_round_trip():
    raw = "Plain *markdown* body\n\n- one\n- two\n"
    front, body = parse_front_matter(raw, "yaml")

    page = build_page(PurePosixPath("plain.md"), front, render_markdown(body), make_config(), TemplateTable())

    assert (page.title, page.description, page.style, page.header, page.date, page.ga_id) == ("",) * 6
    assert page.main == render_markdown(raw)


def test_ga_id_falls_back_to_site_setting():
    config = make_config(ga_id="G-SITE")
    table = TemplateTable()

    assert build_page(PurePosixPath("a.md"), FrontMatter(), "", config, table).ga_id == "G-SITE"
    assert build_page(PurePosixPath("a.md"), FrontMatter(ga_id="G-PAGE"), "", config, table).ga_id == "G-PAGE"


def test_amp_flag_controls_amp_urls():
    table = TemplateTable()
    page = build_page(PurePosixPath("a.md"), FrontMatter(amp=False), "", make_config(), table)
    assert page_urls(page) == ["https://example.com/a"]

    page = build_page(PurePosixPath("a.md"), FrontMatter(), "", make_config(amp=False), table)
    assert page_urls(page) == ["https://example.com/a"]

    page = build_page(PurePosixPath("a.md"), FrontMatter(), "", make_config(), table)
    assert page_urls(page) == ["https://example.com/a", "https://example.com/amp/a"]


def test_summary_from_post_page():
    page = build_page(PurePosixPath("blog/2023-05-01-a.md"), FrontMatter(title="A"), "", make_config(), TemplateTable())

    assert page.summary() == BlogPostSummary(title="A", date="2023-05-01", slug="2023-05-01-a", directory="blog")
    assert page.summary().url == "blog/2023-05-01-a"


def test_sort_summaries_newest_first_with_url_tie_break():
    a = BlogPostSummary(title="a", date="2023-05-01", slug="a", directory="blog")
    b = BlogPostSummary(title="b", date="2023-05-02", slug="b", directory="blog")
    c = BlogPostSummary(title="c", date="2023-05-01", slug="c", directory="blog")
    d = BlogPostSummary(title="d", date="", slug="d", directory="blog")

    for permutation in itertools.permutations([a, b, c, d]):
        assert sort_summaries(permutation) == [b, c, a, d]


def test_section_index_is_synthesized_when_missing():
    posts = [
        BlogPostSummary(title="old", date="2023-05-01", slug="2023-05-01-old", directory="blog"),
        BlogPostSummary(title="new", date="2023-05-02", slug="2023-05-02-new", directory="blog"),
    ]

    page = build_section_index(PurePosixPath("blog"), None, posts, make_config(), TemplateTable())

    assert page.title == "blog"
    assert page.template == "blog-index"
    assert page.url_canonical == "https://example.com/blog/"
    assert page.url_amp == "https://example.com/amp/blog/"
    assert [p.title for p in page.posts] == ["new", "old"]


def test_sitemap_sorted_and_deduplicated():
    urls = ["https://example.com/b", "https://example.com/a", "https://example.com/b"]
    assert build_sitemap(urls) == "https://example.com/a\nhttps://example.com/b\n"
    assert build_sitemap([]) == ""


def test_sitemap_three_line_scenario():
    text = build_sitemap(["/feed.atom", "/amp/a", "/a", "/a"])
    assert text.splitlines() == ["/a", "/amp/a", "/feed.atom"]


def test_atom_feed_entries():
    config = make_config(feed_title="Stream", author_name="Author", author_email="me@example.com")
    posts = sort_summaries(
        [
            BlogPostSummary(title="First", date="2023-05-01", slug="2023-05-01-first", directory="blog"),
            BlogPostSummary(title="Second", date="2023-05-02", slug="2023-05-02-second", directory="blog"),
        ]
    )

    text = build_atom(posts, config)
    root = etree.fromstring(text.split("\n", 1)[1])

    assert text.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert "\n    <title>Stream</title>" in text
    assert root.tag == f"{ATOM}feed"
    assert root.find(f"{ATOM}updated").text == "2023-05-02T00:00:00Z"
    links = {link.get("rel"): link.get("href") for link in root.findall(f"{ATOM}link")}
    assert links == {"self": "https://example.com/feed.atom", "alternate": "https://example.com/blog/"}
    assert root.find(f"{ATOM}author/{ATOM}email").text == "me@example.com"

    entries = root.findall(f"{ATOM}entry")
    assert [e.find(f"{ATOM}title").text for e in entries] == ["Second", "First"]
    first = entries[0]
    assert first.find(f"{ATOM}id").text == "https://example.com/blog/2023-05-02-second"
    assert first.find(f"{ATOM}published").text == "2023-05-02T00:00:00Z"
    assert first.find(f"{ATOM}updated").text == "2023-05-02T00:00:00Z"
    entry_links = {link.get("rel"): link.get("href") for link in first.findall(f"{ATOM}link")}
    assert entry_links == {
        "alternate": "https://example.com/blog/2023-05-02-second",
        "amphtml": "https://example.com/amp/blog/2023-05-02-second",
    }
    assert first.find(f"{ATOM}summary").get("type") == "text"


def test_atom_feed_without_posts_is_valid():
    text = build_atom([], make_config())
    root = etree.fromstring(text.split("\n", 1)[1])

    assert root.findall(f"{ATOM}entry") == []
    assert root.find(f"{ATOM}title").text == "example.com"
    assert root.find(f"{ATOM}updated").text.endswith("Z")


def test_atom_timestamps_from_front_matter_datetime():
    front, _ = parse_front_matter("---\ntitle: A\ndate: 2023-05-01 10:30:00\n---\n", "yaml")
    page = build_page(PurePosixPath("blog/a.md"), front, "", make_config(), TemplateTable())

    root = etree.fromstring(build_atom([page.summary()], make_config()).split("\n", 1)[1])

    assert root.find(f"{ATOM}updated").text == "2023-05-01T00:00:00Z"
    assert root.find(f"{ATOM}entry/{ATOM}published").text == "2023-05-01T00:00:00Z"
