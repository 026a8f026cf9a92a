import pytest
from aiohttp import ClientConnectionError

from config import Config
from conftest import FakeResponse, FakeSession
from extractor import (
    ContentResolver,
    DescriptionStrategy,
    DiffbotStrategy,
    ExtractionStrategy,
    LocalPageStrategy,
    extract_main_text,
)
from models import Provenance

ARTICLE_URL = "https://example.com/article"
DIFFBOT_URL = "https://api.diffbot.com/v3/article"


@pytest.mark.parametrize(
    "html, expected",
    [
        ("<html><body><p>Content</p><script>alert('test');</script></body></html>", "Content"),
        ("<html><head><style>body { color: red; }</style></head><body><p>Text</p></body></html>", "Text"),
        (
            "<html><body><nav>Navigation</nav><article>Article content here</article><footer>Footer</footer></body></html>",
            "Article content here",
        ),
        (
            "<html><body><header>Header</header><main>Main content</main><footer>Footer</footer></body></html>",
            "Main content",
        ),
        (
            "<html><body><div>Sidebar</div><main>Main <b>body</b></main><aside>More</aside></body></html>",
            "Main body",
        ),
        (
            "<body><article>First <article>nested</article></article><p>x</p><article>Second</article></body>",
            "First nested Second",
        ),
    ],
)
def test_extract_main_text(html, expected):
    assert extract_main_text(html, 2000) == expected


def test_extract_main_text_truncates():
    result = extract_main_text(f"<html><body><p>{'a' * 1100}</p></body></html>", 1000)
    assert len(result) == 1003
    assert result.endswith("...")


def resolver_for(session, token=None, max_length=2000):
    env = {"DIFFBOT_TOKEN": token} if token else {}
    config = Config(env, MAX_LENGTH=max_length)
    return ContentResolver.from_config(config, session)


@pytest.mark.asyncio
async def test_diffbot_text_is_used_when_token_set():
    session = FakeSession({
        DIFFBOT_URL: FakeResponse({"objects": [{"title": "T", "text": "This is extracted content from Diffbot."}]}),
    })

    resolved = await resolver_for(session, token="test-token").resolve(ARTICLE_URL)

    assert resolved.text == "This is extracted content from Diffbot."
    assert resolved.provenance is Provenance.REMOTE_EXTRACTION
    assert session.calls[0]["params"] == {"token": "test-token", "url": ARTICLE_URL}


@pytest.mark.asyncio
async def test_local_page_used_without_token():
    session = FakeSession({ARTICLE_URL: FakeResponse("<html><body><p>Basic content</p></body></html>")})

    resolved = await resolver_for(session).resolve(ARTICLE_URL)

    assert resolved.text == "Basic content"
    assert resolved.provenance is Provenance.LOCAL_HEURISTIC
    assert DIFFBOT_URL not in session.urls()


@pytest.mark.asyncio
async def test_diffbot_error_falls_back_to_local_page():
    session = FakeSession({
        DIFFBOT_URL: ClientConnectionError("API error"),
        ARTICLE_URL: FakeResponse("<html><body><p>Fallback content</p></body></html>"),
    })

    resolved = await resolver_for(session, token="test-token").resolve(ARTICLE_URL)

    assert resolved.text == "Fallback content"
    assert resolved.provenance is Provenance.LOCAL_HEURISTIC


@pytest.mark.asyncio
async def test_diffbot_empty_objects_falls_back():
    session = FakeSession({
        DIFFBOT_URL: FakeResponse({"objects": []}),
        ARTICLE_URL: FakeResponse("<p>Page text</p>"),
    })

    resolved = await resolver_for(session, token="test-token").resolve(ARTICLE_URL)

    assert resolved.text == "Page text"


@pytest.mark.asyncio
async def test_diffbot_text_is_truncated():
    session = FakeSession({DIFFBOT_URL: FakeResponse({"objects": [{"text": "b" * 50}]})})

    resolved = await resolver_for(session, token="test-token", max_length=10).resolve(ARTICLE_URL)

    assert resolved.text == "b" * 10 + "..."


@pytest.mark.asyncio
async def test_description_used_when_page_fails():
    session = FakeSession({ARTICLE_URL: FakeResponse("gone", status=404)})

    resolved = await resolver_for(session).resolve(ARTICLE_URL, "<p>From the <b>feed</b></p>")

    assert resolved.text == "From the feed"
    assert resolved.provenance is Provenance.DESCRIPTION_ONLY
    assert resolved.extracted == ""


@pytest.mark.asyncio
async def test_everything_empty_gives_none_provenance():
    session = FakeSession({ARTICLE_URL: ClientConnectionError("refused")})

    resolved = await resolver_for(session).resolve(ARTICLE_URL, "")

    assert resolved.text == ""
    assert resolved.provenance is Provenance.NONE


@pytest.mark.asyncio
async def test_unexpected_strategy_error_moves_to_next():
    class Exploding(ExtractionStrategy):
        name = "exploding"

        async def extract(self, link, description):
            raise ValueError("bad payload")

    resolver = ContentResolver([Exploding(), DescriptionStrategy()])

    resolved = await resolver.resolve(ARTICLE_URL, "kept")

    assert resolved.text == "kept"


@pytest.mark.asyncio
async def test_strategy_order_is_configurable():
    session = FakeSession({ARTICLE_URL: FakeResponse("<p>Page</p>")})
    config = Config({})
    resolver = ContentResolver([DescriptionStrategy(), LocalPageStrategy(config, session)])

    resolved = await resolver.resolve(ARTICLE_URL, "Summary first")

    assert resolved.text == "Summary first"
    assert session.calls == []


@pytest.mark.asyncio
async def test_diffbot_strategy_skips_without_token():
    session = FakeSession()
    strategy = DiffbotStrategy(Config({}), session)
    assert await strategy.extract(ARTICLE_URL, "") == ""
    assert session.calls == []
