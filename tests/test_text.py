from unittest.mock import patch

from tabtopics.manager import TabDescriptor
from tabtopics.text import (
    domain_root, extract_visible_text, is_http_url, tab_vector, tokenize,
    truncate_text, url_tokens, visible_text_fallback,
)

PAGE = (
    "<html><head><title>Page title</title><style>.x { color: red }</style></head>"
    "<body><nav><ul><li>Menu<li>Links</ul></nav><header>Site header</header>"
    "<main><p>Real content here</p><img src='a.png'><p>More text</p></main>"
    "<aside>Sidebar</aside><footer>Copyright</footer><script>var x = 1;</script>"
    "<p>After footer</p></body></html>"
)


# -- tokenize --

class TestTokenize:
    def test_splits_on_non_alphanumeric(self):
        assert tokenize("Kubernetes: Pods & Services!") == ["kubernetes", "pods", "services"]

    def test_non_ascii_letters_are_boundaries(self):
        assert tokenize("Café Münster") == ["caf", "m", "nster"]

    def test_empty(self):
        assert tokenize("") == []


# -- domain_root --

class TestDomainRoot:
    def test_strips_www_and_suffix(self):
        assert domain_root("https://www.github.com/user/repo") == "github"

    def test_first_label_of_subdomain(self):
        assert domain_root("https://docs.python.org/3/") == "docs"

    def test_port_ignored(self):
        assert domain_root("http://localhost:8080/a") == "localhost"

    def test_no_host(self):
        assert domain_root("not a url") == ""


# -- url_tokens --

class TestUrlTokens:
    def test_separators(self):
        url = "https://example.com/Rust-lang_book/ch01.html?q=async&page=2"
        assert url_tokens(url) == [
            "https", "example", "com", "rust", "lang", "book", "ch01", "html", "q", "async", "page", "2",
        ]


class TestIsHttpUrl:
    def test_schemes(self):
        assert is_http_url("https://a.dev")
        assert is_http_url("http://a.dev")
        assert not is_http_url("chrome://settings")
        assert not is_http_url("file:///tmp/x.html")


# -- tab_vector --

class TestTabVector:
    def test_weights_per_stream(self):
        tab = TabDescriptor(1, "Async Rust Guide", "https://www.rustlang.org/learn/async-book")
        vector = tab_vector(tab, "async tasks executor")
        assert vector == {
            "async": 7.0,
            "rust": 5.0,
            "guide": 5.0,
            "learn": 1.5,
            "book": 1.5,
            "tasks": 0.5,
            "executor": 0.5,
        }

    def test_domain_root_never_a_term(self):
        tab = TabDescriptor(1, "Github notifications", "https://github.com/notifications")
        vector = tab_vector(tab, "github github github")
        assert "github" not in vector
        assert vector["notifications"] == 6.5


# -- visible text --

class TestVisibleText:
    def test_fallback_drops_boilerplate(self):
        assert visible_text_fallback(PAGE) == "Real content here More text After footer"

    def test_uses_trafilatura_when_it_finds_text(self):
        with patch("tabtopics.text.trafilatura.extract", return_value="Main   Article\nText") as extract:
            assert extract_visible_text("<html></html>", "https://a.dev/") == "main article text"
        extract.assert_called_once()

    def test_falls_back_when_trafilatura_gives_up(self):
        with patch("tabtopics.text.trafilatura.extract", return_value=None):
            assert extract_visible_text(PAGE) == "real content here more text after footer"

    def test_clipped(self):
        with patch("tabtopics.text.trafilatura.extract", return_value="abcdefghijklmnop"):
            assert extract_visible_text("<p>x</p>", max_chars=10) == "abcdefghij"

    def test_empty_html(self):
        assert extract_visible_text("") == ""

    def test_truncate_short_text_untouched(self):
        assert truncate_text("short", 100) == "short"
