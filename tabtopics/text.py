"""Turn a tab's title, URL and page text into weighted token streams."""
import re
import sys
from html.parser import HTMLParser
from typing import List, Optional, Tuple
from urllib.parse import urlparse

try:
    import trafilatura
except Exception as exc:
    print("[ERROR] Missing dependency: trafilatura. Install with: pip install trafilatura", file=sys.stderr)
    raise

from tabtopics.vectorize import TermVector, build_vector

TITLE_WEIGHT = 5.0
URL_WEIGHT = 1.5
PAGE_WEIGHT = 0.5

MAX_PAGE_CHARS = 8000

URL_SEPARATORS = re.compile(r"[/\-._?&=]")

NOISE_TAGS = {"nav", "footer", "header", "aside", "script", "style", "noscript"}
SKIPPED_TAGS = NOISE_TAGS | {"head", "title", "template"}


def is_http_url(url: str) -> bool:
    return url.startswith("http://") or url.startswith("https://")


def tokenize(text: str) -> List[str]:
    text = text.lower()
    text = re.sub(r"[^a-z0-9]+", " ", text)
    return text.split()


def domain_root(url: str) -> str:
    """Hostname without a leading www. and without anything after its first label."""
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""
    if host.startswith("www."):
        host = host[4:]
    return host.split(".")[0]


def url_tokens(url: str) -> List[str]:
    tokens: List[str] = []
    for piece in URL_SEPARATORS.split(url.lower()):
        tokens.extend(tokenize(piece))
    return tokens


class VisibleTextParser(HTMLParser):
    """Collect text outside navigation and boilerplate regions."""

    def __init__(self) -> None:
        super().__init__()
        self.parts: List[str] = []
        # Open skipped regions, innermost last. Other tags are never tracked,
        # so unclosed <li> or <p> elements cannot throw the nesting off.
        self._skipping: List[str] = []

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        tag = tag.lower()
        if tag in SKIPPED_TAGS:
            self._skipping.append(tag)

    def handle_endtag(self, tag: str) -> None:
        tag = tag.lower()
        if tag in self._skipping:
            index = len(self._skipping) - 1 - self._skipping[::-1].index(tag)
            del self._skipping[index:]

    def handle_data(self, data: str) -> None:
        if self._skipping:
            return
        if data.strip():
            self.parts.append(data.strip())

    def text(self) -> str:
        return " ".join(self.parts)


def visible_text_fallback(html: str) -> str:
    parser = VisibleTextParser()
    try:
        parser.feed(html)
        parser.close()
    except Exception:
        return re.sub(r"\s+", " ", re.sub(r"<[^>]+>", " ", html)).strip()
    return parser.text()


def truncate_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars]


def extract_visible_text(html: str, url: str = "", max_chars: int = MAX_PAGE_CHARS) -> str:
    """Main body text of a page, lowercased and clipped to max_chars."""
    if not html:
        return ""
    text = trafilatura.extract(
        html,
        url=url or None,
        include_comments=False,
        include_tables=False,
        include_links=False,
    )
    if not text:
        # trafilatura gives up on very short or unusual pages.
        text = visible_text_fallback(html)
    text = re.sub(r"\s+", " ", text).strip()
    return truncate_text(text.lower(), max_chars)


def tab_streams(title: str, url: str, page_text: str = "") -> List[Tuple[List[str], float]]:
    return [
        (tokenize(title or ""), TITLE_WEIGHT),
        (url_tokens(url or ""), URL_WEIGHT),
        (tokenize(page_text or ""), PAGE_WEIGHT),
    ]


def tab_vector(tab, page_text: str = "") -> TermVector:
    """Term vector of a tab descriptor, with its own domain root left out."""
    return build_vector(tab_streams(tab.title, tab.url, page_text), domain_root(tab.url or ""))
