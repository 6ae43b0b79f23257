import pytest

from prerender_service.components.renderer.markup import MarkupProcessor, parse_location
from prerender_service.core.exceptions import RendererError

SAMPLE_HTML = """
<html>
<head>
    <title>Product 42</title>
    <meta name="prerender-status-code" content=" 301 ">
    <meta name="prerender-header" content="Cache-Control: private">
    <meta name="prerender-header" content="Location: /products/42-new">
    <link rel="modulepreload" href="/assets/index.js">
    <link rel="preload" as="script" href="/assets/vendor.js">
    <link rel="preload" as="style" href="/assets/index.css">
    <script type="application/ld+json">{"@type": "Product", "name": "Product 42"}</script>
    <script type="module" src="/assets/index.js"></script>
</head>
<body>
    <div id="root"><h1>Product 42</h1></div>
    <script>window.__STATE__ = {"id": 42};</script>
</body>
</html>
"""


def test_status_and_redirect_markers():
    processor = MarkupProcessor(SAMPLE_HTML)
    assert processor.status_marker() == "301"
    assert processor.redirect_marker() == "Location: /products/42-new"


def test_markers_absent():
    processor = MarkupProcessor("<html><head><title>x</title></head><body></body></html>")
    assert processor.status_marker() is None
    assert processor.redirect_marker() is None


def test_custom_meta_names():
    html = '<html><head><meta name="x-status" content="404"><meta name="x-header" content="location: /gone"></head></html>'
    processor = MarkupProcessor(html, status_meta_name="x-status", header_meta_name="x-header")
    assert processor.status_marker() == "404"
    assert processor.redirect_marker() == "location: /gone"


def test_strip_scripts_keeps_structured_data_and_content():
    html, removed = MarkupProcessor(SAMPLE_HTML).strip_scripts()

    # module script, inline script, modulepreload and script preload
    assert removed == 4
    assert "application/ld+json" in html
    assert "<h1>Product 42</h1>" in html
    assert "window.__STATE__" not in html
    assert "/assets/index.js" not in html
    assert "/assets/vendor.js" not in html
    assert "/assets/index.css" in html


def test_strip_scripts_without_scripts_returns_markup_unchanged():
    original = "<!DOCTYPE html><html><body><p>static</p></body></html>"
    html, removed = MarkupProcessor(original).strip_scripts()
    assert removed == 0
    assert html is original


def test_none_markup_is_rejected():
    with pytest.raises(RendererError):
        MarkupProcessor(None)


@pytest.mark.parametrize("marker, expected", [
    ("Location: /foo", "/foo"),
    ("location:https://example.com/a?b=c", "https://example.com/a?b=c"),
    ("Location:   ", None),
    ("Cache-Control: no-cache", None),
    ("/foo", None),
    (None, None),
])
def test_parse_location(marker, expected):
    assert parse_location(marker) == expected


@pytest.mark.parametrize("marker, expected", [
    ("Location: /文章/1", "/%E6%96%87%E7%AB%A0/1"),
    ("Location: /search?q=café&page=2", "/search?q=caf%C3%A9&page=2"),
    ("Location: /already%20encoded", "/already%20encoded"),
    ("Location: /a b", "/a%20b"),
])
def test_parse_location_encodes_for_header(marker, expected):
    location = parse_location(marker)
    assert location == expected
    location.encode('latin-1')


@pytest.mark.parametrize("marker", [
    "Location: /a\r\nSet-Cookie: session=1",
    "Location: /a\nX-Injected: 1",
    "Location: /a\x00b",
    "Location: /a\tb",
])
def test_parse_location_rejects_control_characters(marker):
    assert parse_location(marker) is None


def test_redirect_marker_with_encoded_line_break_is_dropped():
    html = '<meta name="prerender-header" content="Location: /a&#13;&#10;Set-Cookie: session=1">'
    marker = MarkupProcessor(html).redirect_marker()
    assert "\r\n" in marker
    assert parse_location(marker) is None
