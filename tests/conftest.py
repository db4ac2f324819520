from pathlib import Path

import pytest

from mdsite.config import SiteConfig

BASE_URL = "https://example.com"

TEMPLATES = {
    "_layouts/page.j2": (
        "<!-- page -->\n"
        "<title>{{ title }}</title>\n"
        '<link rel="canonical" href="{{ url_canonical }}">\n'
        "{% if amp %}<meta name=\"amp\">{% endif %}\n"
        "<main>{{ main }}</main>\n"
    ),
    "_layouts/blog-post.j2": (
        "<!-- blog-post -->\n"
        "<title>{{ title }}</title>\n"
        "<time>{{ date }}</time>\n"
        "{% if amp %}<meta name=\"amp\">{% endif %}\n"
        "<main>{{ main }}</main>\n"
    ),
    "_layouts/blog-index.j2": (
        "<!-- blog-index -->\n"
        "<h1>{{ title }}</h1>\n"
        "<ul>\n"
        "{% for post in posts %}"
        '<li data-date="{{ post.date }}"><a href="/{{ post.url }}">{{ post.title }}</a></li>\n'
        "{% endfor %}"
        "</ul>\n"
    ),
}


def write_tree(root: Path, files: dict) -> None:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")


@pytest.fixture
def make_site(tmp_path):
    """Write a source tree (with the default templates) and return its config."""
    src = tmp_path / "src"
    dst = tmp_path / "dst"

    def make(files: dict, with_templates: bool = True, **overrides) -> SiteConfig:
        tree = {**TEMPLATES, **files} if with_templates else dict(files)
        src.mkdir(parents=True, exist_ok=True)
        write_tree(src, tree)
        options = {"workers": 2}
        options.update(overrides)
        return SiteConfig(src=src, dst=dst, base_url=BASE_URL, **options)

    return make
