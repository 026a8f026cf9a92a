import json
from typing import Any, Dict, List, Optional


class FakeResponse:
    """Minimal stand-in for an aiohttp response used as an async context manager."""

    def __init__(self, body: Any = b"", status: int = 200):
        if isinstance(body, (dict, list)):
            body = json.dumps(body)
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.body = body
        self.status = status

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def read(self) -> bytes:
        return self.body

    async def text(self, errors: str = "strict") -> str:
        return self.body.decode("utf-8", errors=errors)

    async def json(self, content_type: Optional[str] = "application/json"):
        return json.loads(self.body.decode("utf-8"))


class FakeSession:
    """Routes GET requests by URL.

    A route value may be a FakeResponse, an exception instance (raised on
    request) or a list of either, consumed one per request with the last
    element repeating.
    """

    def __init__(self, routes: Optional[Dict[str, Any]] = None):
        self.routes: Dict[str, Any] = dict(routes or {})
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, params: Optional[Dict[str, str]] = None, **kwargs):
        self.calls.append({"url": url, "params": params, **kwargs})
        route = self.routes.get(url)
        if isinstance(route, list):
            route = route.pop(0) if len(route) > 1 else route[0]
        if route is None:
            return FakeResponse(b"", status=404)
        if isinstance(route, BaseException):
            raise route
        return route

    def urls(self) -> List[str]:
        return [call["url"] for call in self.calls]


def make_rss(items, title: str = "Test Channel", encoding: Optional[str] = None) -> str:
    """Build an RSS 2.0 document from dicts with title/link/description/pubDate/guid keys."""
    prologue = f'<?xml version="1.0" encoding="{encoding}"?>' if encoding else '<?xml version="1.0"?>'
    rendered = []
    for item in items:
        fields = "".join(
            f"<{tag}>{item[tag]}</{tag}>"
            for tag in ("title", "link", "description", "pubDate", "guid")
            if tag in item
        )
        rendered.append(f"<item>{fields}</item>")
    return (
        f'{prologue}<rss version="2.0"><channel>'
        f"<title>{title}</title><link>https://example.com/</link>"
        f"<description>Channel description</description>"
        f'{"".join(rendered)}</channel></rss>'
    )

