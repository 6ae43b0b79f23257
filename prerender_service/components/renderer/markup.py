"""
Post-processing of captured page markup using BeautifulSoup.

This module provides the `MarkupProcessor` class, which reads the in-page completion
markers (status-code override and `Location:` header meta tags) and strips
executable script elements so the snapshot served to crawlers does not try to boot
the client-side application a second time.
"""
import re
from urllib.parse import quote

from bs4 import BeautifulSoup
from typing import List, Optional, Tuple

from prerender_service.core.exceptions import RendererError

DEFAULT_STATUS_META_NAME = "prerender-status-code"
DEFAULT_HEADER_META_NAME = "prerender-header"

# Script types that carry data rather than code and must survive cleanup.
DATA_SCRIPT_TYPES = ("application/ld+json",)

# Characters left as-is when percent-encoding a redirect target for the Location header.
LOCATION_SAFE_CHARS = ":/?#[]@!$&'()*+,;=%~"
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


class MarkupProcessor:
    """
    Parses rendered markup once and answers marker and cleanup queries on it.

    Attributes:
        soup (BeautifulSoup): The parsed document.
    """
    def __init__(
        self,
        html_content: str,
        status_meta_name: str = DEFAULT_STATUS_META_NAME,
        header_meta_name: str = DEFAULT_HEADER_META_NAME,
    ):
        """
        Args:
            html_content (str): Markup captured from the page.
            status_meta_name (str): `name` of the meta tag carrying a status-code override.
            header_meta_name (str): `name` of the meta tags carrying raw response headers.

        Raises:
            RendererError: If `html_content` is None or cannot be parsed.
        """
        if html_content is None:
            raise RendererError("HTML content cannot be None for MarkupProcessor.")
        self.html_content = html_content
        self.status_meta_name = status_meta_name
        self.header_meta_name = header_meta_name
        try:
            self.soup = BeautifulSoup(html_content, 'html.parser')
        except Exception as e:
            raise RendererError(f"Failed to parse rendered markup: {e}")

    def _meta_contents(self, name: str) -> List[str]:
        contents = []
        for tag in self.soup.find_all('meta', attrs={'name': name}):
            content = tag.get('content')
            if content is not None:
                contents.append(content.strip())
        return contents

    def status_marker(self) -> Optional[str]:
        """
        Returns the raw content of the first status-code meta tag, e.g. "404".
        """
        contents = self._meta_contents(self.status_meta_name)
        return contents[0] if contents else None

    def redirect_marker(self) -> Optional[str]:
        """
        Returns the first header meta tag that carries a `Location:` header, verbatim
        (e.g. "Location: /new-path").
        """
        for content in self._meta_contents(self.header_meta_name):
            name, _, _ = content.partition(':')
            if name.strip().lower() == 'location':
                return content
        return None

    def strip_scripts(self) -> Tuple[str, int]:
        """
        Removes executable `<script>` elements and script preload hints.

        JSON-LD blocks are kept since crawlers read structured data from them.

        Returns:
            Tuple[str, int]: The cleaned markup and the number of elements removed.
        """
        removed = 0
        for script in self.soup.find_all('script'):
            script_type = (script.get('type') or '').strip().lower()
            if script_type in DATA_SCRIPT_TYPES:
                continue
            script.decompose()
            removed += 1

        for link in self.soup.find_all('link'):
            rel = [r.lower() for r in (link.get('rel') or [])]
            as_value = (link.get('as') or '').lower()
            if 'modulepreload' in rel or ('preload' in rel and as_value == 'script'):
                link.decompose()
                removed += 1

        if removed == 0:
            return self.html_content, 0
        return str(self.soup), removed


def parse_location(marker: Optional[str]) -> Optional[str]:
    """
    Extracts the header value from a raw "Location: <value>" marker.

    Non-ASCII characters are percent-encoded so the value fits in a Latin-1 header.
    Values carrying control characters (CR, LF, NUL...) are rejected.

    Returns:
        Optional[str]: The location, or None if the marker is absent, not a Location
        header, or unusable as a header value.
    """
    if not marker:
        return None
    name, sep, value = marker.partition(':')
    if not sep or name.strip().lower() != 'location':
        return None
    value = value.strip()
    if not value or _CONTROL_CHARS.search(value):
        return None
    return quote(value, safe=LOCATION_SAFE_CHARS)
