from __future__ import annotations

import posixpath
import re
from typing import Iterable
from urllib.parse import urlsplit, urlunsplit

AMP_SEGMENT = "amp"
INDEX_NAMES = {"index", "index.html"}
SLASHES_RE = re.compile(r"/{2,}")


def normalize_url(url: str) -> str:
    """Canonicalize the path of ``url``.

    A trailing ``index`` segment collapses to its parent directory with a
    trailing slash, repeated slashes collapse, and an empty path becomes
    ``/``. Other trailing slashes are left as they are, so the function is
    idempotent.
    """
    parts = urlsplit(url)
    path = SLASHES_RE.sub("/", parts.path)
    head, _, last = path.rpartition("/")
    if last in INDEX_NAMES:
        path = f"{head}/"
    if not path.startswith("/"):
        path = f"/{path}"
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


def site_url(base_url: str, segments: Iterable[str]) -> str:
    parts = urlsplit(base_url)
    path = posixpath.join("/", parts.path.lstrip("/"), *[seg for seg in segments if seg])
    return normalize_url(urlunsplit((parts.scheme, parts.netloc, path, "", "")))


def canonical_url(base_url: str, segments: Iterable[str]) -> str:
    return site_url(base_url, segments)


def amp_url(base_url: str, segments: Iterable[str]) -> str:
    return site_url(base_url, [AMP_SEGMENT, *segments])


def is_absolute_http(url: str) -> bool:
    parts = urlsplit(url)
    return parts.scheme in {"http", "https"} and bool(parts.netloc)
