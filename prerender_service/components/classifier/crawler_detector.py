"""
Crawler detection and request routing into the render path.

`should_prerender()` decides whether an inbound page request comes from a client
that cannot execute JavaScript (search engine crawlers, link-preview fetchers) or
explicitly asks for a snapshot. `PrerenderRoutingMiddleware` applies that decision
in front of an application: qualifying requests are rewritten onto the render
route with the original URL as the target.
"""
from typing import Iterable, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from prerender_service.core.logger import get_logger

logger = get_logger(__name__)

CRAWLER_USER_AGENTS = (
    'googlebot',
    'bingbot',
    'slurp',  # Yahoo
    'duckduckbot',
    'baiduspider',
    'yandexbot',
    'facebookexternalhit',
    'twitterbot',
    'linkedinbot',
    'whatsapp',
    'telegrambot',
    'skypeuripreview',
    'slackbot',
    'applebot',
    'discordbot',
    'redditbot',
    'pinterestbot',
    'tumblr',
    'bitlybot',
    'embedly',
    'quora link preview',
    'showyoubot',
    'outbrain',
    'pinterest/0.',
    'developers.google.com/+/web/snippet',
    'www.google.com/webmasters/tools/richsnippets',
    'chrome-lighthouse',
    'lighthouse',
)

PRERENDER_QUERY_PARAMS = ('_escaped_fragment_', 'prerender')
SKIPPED_PATH_PREFIXES = ('/api/', '/_next/', '/static/')
ORIGINAL_USER_AGENT_HEADER = 'x-original-user-agent'


def is_crawler(user_agent: Optional[str]) -> bool:
    if not user_agent:
        return False
    ua = user_agent.lower()
    return any(bot in ua for bot in CRAWLER_USER_AGENTS)


def is_prerender_request(query_keys: Iterable[str]) -> bool:
    return any(key in PRERENDER_QUERY_PARAMS for key in query_keys)


def should_prerender(
    method: str,
    path: str,
    accept: str,
    user_agent: Optional[str],
    query_keys: Iterable[str],
    render_path: str = '/render',
) -> bool:
    """
    Decides whether a page request should be answered with a rendered snapshot.

    Only GET requests for HTML pages qualify; API routes, build assets, static files
    and the render route itself are always passed through.

    Args:
        method (str): HTTP method.
        path (str): Request path.
        accept (str): The Accept header.
        user_agent (Optional[str]): The User-Agent header.
        query_keys (Iterable[str]): Names of the query parameters.
        render_path (str): Path of the render route, never rewritten onto itself.

    Returns:
        bool: True if the request should be rendered.
    """
    if method.upper() != 'GET':
        return False
    if 'text/html' not in (accept or ''):
        return False
    if path == render_path or path.startswith(SKIPPED_PATH_PREFIXES):
        return False
    if '.' in path and not path.endswith('.html'):
        return False
    return is_crawler(user_agent) or is_prerender_request(query_keys)


def strip_prerender_params(url: str) -> str:
    """Removes the snapshot-request query parameters from a URL."""
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in PRERENDER_QUERY_PARAMS]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), ''))


def _header(headers: Iterable, name: bytes) -> str:
    for key, value in headers:
        if key.lower() == name:
            return value.decode('latin-1')
    return ''


class PrerenderRoutingMiddleware:
    """
    ASGI middleware that routes crawler page requests to the render endpoint.

    Requests that qualify are rewritten in place to `GET <render_path>?url=<original URL>`;
    the crawler's user agent is kept in `X-Original-User-Agent` for logging.
    """
    def __init__(self, app, render_path: str = '/render', enabled: bool = True):
        self.app = app
        self.render_path = render_path
        self.enabled = enabled

    async def __call__(self, scope, receive, send):
        if not self.enabled or scope.get('type') != 'http':
            await self.app(scope, receive, send)
            return

        headers = scope.get('headers') or []
        query_string = scope.get('query_string', b'').decode('latin-1')
        query_keys = [k for k, _ in parse_qsl(query_string, keep_blank_values=True)]
        user_agent = _header(headers, b'user-agent')

        if not should_prerender(
            scope.get('method', 'GET'),
            scope.get('path', '/'),
            _header(headers, b'accept'),
            user_agent,
            query_keys,
            self.render_path,
        ):
            await self.app(scope, receive, send)
            return

        original_url = strip_prerender_params(self._original_url(scope, headers, query_string))
        logger.info(f"Routing crawler request to render path: {original_url} (UA: {user_agent!r})")

        new_scope = dict(scope)
        new_scope['path'] = self.render_path
        new_scope['raw_path'] = self.render_path.encode('latin-1')
        new_scope['query_string'] = urlencode({'url': original_url}).encode('latin-1')
        new_scope['headers'] = [(k, v) for k, v in headers if k.lower() != ORIGINAL_USER_AGENT_HEADER.encode()]
        new_scope['headers'].append((ORIGINAL_USER_AGENT_HEADER.encode(), user_agent.encode('latin-1')))
        await self.app(new_scope, receive, send)

    @staticmethod
    def _original_url(scope: Mapping, headers: Iterable, query_string: str) -> str:
        scheme = scope.get('scheme', 'http')
        host = _header(headers, b'host')
        if not host and scope.get('server'):
            server_host, server_port = scope['server']
            host = f"{server_host}:{server_port}"
        url = f"{scheme}://{host}{scope.get('path', '/')}"
        if query_string:
            url += f"?{query_string}"
        return url
