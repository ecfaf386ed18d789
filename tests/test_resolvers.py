"""Tests for the catalog/archive resolvers against mocked HTTP."""

import httpx
import pytest

from primer.core.config import CatalogSettings, SearchSettings
from primer.resolvers.image import ImageResolver
from primer.resolvers.image import query_variants as image_queries
from primer.resolvers.music import MusicResolver, artist_matches, title_matches
from primer.resolvers.music import query_variants as music_queries
from primer.resolvers.reading import ReadingResolver, pick_best_link

from conftest import make_image, make_music


def client_for(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def track(name, artist, url="https://music.apple.com/us/album/1?i=2"):
    return {"trackName": name, "artistName": artist, "trackViewUrl": url, "collectionViewUrl": url.split("?")[0]}


# =============================================================================
# Music
# =============================================================================

class TestMusicMatching:
    def test_title_fuzzy_containment(self):
        assert title_matches("Clair de lune", "Suite bergamasque: III. Clair de lune")
        assert title_matches("Clair de Lune (Suite Bergamasque)", "Clair de lune")
        assert not title_matches("Clair de lune", "Rêverie")

    def test_artist_must_be_stated(self):
        classical = make_music(
            title="Cello Suite No. 1",
            artist="Johann Sebastian Bach",
            composer="Johann Sebastian Bach",
            performer="Yo-Yo Ma",
            is_classical=True,
        )
        assert artist_matches(classical, "Yo-Yo Ma")
        assert artist_matches(classical, "Johann Sebastian Bach")
        assert artist_matches(classical, "Yo-Yo Ma & Kathryn Stott")
        assert not artist_matches(classical, "Pablo Casals")

    def test_query_variants_classical(self):
        proposal = make_music(
            title="Gymnopédie No. 1",
            artist="Erik Satie",
            composer="Erik Satie",
            performer="Pascal Rogé",
            is_classical=True,
            search_query="Satie Gymnopedie 1 Roge",
        )
        variants = music_queries(proposal)
        assert variants[0] == "Erik Satie Gymnopédie No. 1"
        assert variants[1] == "Gymnopédie No. 1 Erik Satie"
        assert "Pascal Rogé Gymnopédie No. 1" in variants
        assert "Satie Gymnopedie 1 Roge" in variants
        assert variants[-1] == "Gymnopédie No. 1"
        assert len(variants) == len(set(v.lower() for v in variants))


class TestMusicResolver:
    @pytest.mark.asyncio
    async def test_accepts_matching_track(self):
        seen = []

        def handler(request):
            seen.append(request.url.params["term"])
            return httpx.Response(200, json={"results": [
                track("Clair de Lune", "Claude Debussy", "https://music.apple.com/us/album/clair/1?i=9"),
            ]})

        async with client_for(handler) as client:
            resolver = MusicResolver(client=client, settings=CatalogSettings())
            reference = await resolver.resolve(make_music())

        assert reference.url == "https://music.apple.com/us/album/clair/1?i=9"
        assert reference.source_url == "https://music.apple.com/us/album/clair/1"
        assert seen == ["Claude Debussy Clair de lune"]

    @pytest.mark.asyncio
    async def test_rejects_other_track_by_same_artist(self):
        def handler(request):
            return httpx.Response(200, json={"results": [track("Rêverie", "Claude Debussy")]})

        async with client_for(handler) as client:
            resolver = MusicResolver(client=client, settings=CatalogSettings())
            assert await resolver.resolve(make_music()) is None

    @pytest.mark.asyncio
    async def test_later_variant_can_match(self):
        def handler(request):
            if request.url.params["term"] == "Clair de lune":
                return httpx.Response(200, json={"results": [track("Clair de lune", "Claude Debussy")]})
            return httpx.Response(200, json={"results": []})

        async with client_for(handler) as client:
            resolver = MusicResolver(client=client, settings=CatalogSettings())
            assert await resolver.resolve(make_music()) is not None

    @pytest.mark.asyncio
    async def test_network_error_is_no_result(self):
        def handler(request):
            raise httpx.ConnectError("boom", request=request)

        async with client_for(handler) as client:
            resolver = MusicResolver(client=client, settings=CatalogSettings())
            assert await resolver.resolve(make_music()) is None

    @pytest.mark.asyncio
    async def test_http_error_status_is_no_result(self):
        async with client_for(lambda request: httpx.Response(503)) as client:
            resolver = MusicResolver(client=client, settings=CatalogSettings())
            assert await resolver.resolve(make_music()) is None


# =============================================================================
# Image
# =============================================================================

COMMONS_PAGE = {
    "query": {"pages": {
        "101": {
            "index": 1,
            "title": "File:Van Gogh - Starry Night.jpg",
            "imageinfo": [{
                "url": "https://upload.wikimedia.org/full.jpg",
                "thumburl": "https://upload.wikimedia.org/thumb/800px-starry.jpg",
                "descriptionurl": "https://commons.wikimedia.org/wiki/File:Van_Gogh_-_Starry_Night.jpg",
                "mime": "image/jpeg",
            }],
        },
    }},
}


class TestImageResolver:
    def test_query_order(self):
        proposal = make_image(search_query="starry night van gogh moma")
        assert image_queries(proposal) == [
            "starry night van gogh moma",
            "The Starry Night Vincent van Gogh",
            "Vincent van Gogh The Starry Night",
            "The Starry Night",
        ]

    @pytest.mark.asyncio
    async def test_commons_hit_checked_for_reachability(self):
        methods = []

        def handler(request):
            methods.append(request.method)
            if request.method == "HEAD":
                return httpx.Response(200, headers={"content-type": "image/jpeg"})
            assert request.url.params["gsrnamespace"] == "6"
            return httpx.Response(200, json=COMMONS_PAGE)

        async with client_for(handler) as client:
            resolver = ImageResolver(client=client, settings=CatalogSettings())
            reference = await resolver.resolve(make_image())

        assert reference.url == "https://upload.wikimedia.org/thumb/800px-starry.jpg"
        assert reference.source_url == "https://commons.wikimedia.org/wiki/File:Van_Gogh_-_Starry_Night.jpg"
        assert methods == ["GET", "HEAD"]

    @pytest.mark.asyncio
    async def test_non_image_content_type_rejected_then_wikipedia_fallback(self):
        def handler(request):
            host = request.url.host
            if request.method == "HEAD":
                if "thumb/800px-starry" in str(request.url):
                    return httpx.Response(200, headers={"content-type": "text/html"})
                return httpx.Response(200, headers={"content-type": "image/jpeg"})
            if host == "commons.wikimedia.org":
                return httpx.Response(200, json=COMMONS_PAGE)
            return httpx.Response(200, json={"query": {"pages": {"5": {
                "index": 1,
                "title": "The Starry Night",
                "thumbnail": {"source": "https://upload.wikimedia.org/wiki-thumb.jpg"},
            }}}})

        async with client_for(handler) as client:
            resolver = ImageResolver(client=client, settings=CatalogSettings())
            reference = await resolver.resolve(make_image())

        assert reference.url == "https://upload.wikimedia.org/wiki-thumb.jpg"
        assert reference.source_url == "https://en.wikipedia.org/wiki/The_Starry_Night"

    @pytest.mark.asyncio
    async def test_nothing_found(self):
        async with client_for(lambda request: httpx.Response(200, json={})) as client:
            resolver = ImageResolver(client=client, settings=CatalogSettings())
            assert await resolver.resolve(make_image()) is None


# =============================================================================
# Reading
# =============================================================================

class TestReadingResolver:
    def test_prefers_encyclopedia(self):
        results = [
            {"link": "https://someblog.example.com/light"},
            {"link": "https://www.britannica.com/science/light"},
            {"link": "https://en.wikipedia.org/wiki/Light"},
        ]
        assert pick_best_link(results) == "https://en.wikipedia.org/wiki/Light"

    def test_then_allow_list(self):
        results = [
            {"link": "https://someblog.example.com/light"},
            {"link": "https://aeon.co/essays/light"},
        ]
        assert pick_best_link(results) == "https://aeon.co/essays/light"

    def test_then_first_result(self):
        assert pick_best_link([{"link": "https://a.example"}, {"link": "https://b.example"}]) == "https://a.example"
        assert pick_best_link([]) is None

    def test_lookalike_domain_not_trusted(self):
        results = [{"link": "https://first.example"}, {"link": "https://notbritannica.com/x"}]
        assert pick_best_link(results) == "https://first.example"

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        async with client_for(lambda request: pytest.fail("no request expected")) as client:
            resolver = ReadingResolver(
                client=client,
                settings=CatalogSettings(),
                search_settings=SearchSettings(GOOGLE_SEARCH_API_KEY="", GOOGLE_SEARCH_CX=""),
            )
            assert await resolver.resolve("Light") is None

    @pytest.mark.asyncio
    async def test_resolve_via_search(self):
        def handler(request):
            assert request.url.params["q"] == "philosophy of light"
            return httpx.Response(200, json={"items": [
                {"title": "x", "link": "https://plato.stanford.edu/entries/light/"},
            ]})

        async with client_for(handler) as client:
            resolver = ReadingResolver(
                client=client,
                settings=CatalogSettings(),
                search_settings=SearchSettings(GOOGLE_SEARCH_API_KEY="k", GOOGLE_SEARCH_CX="c"),
            )
            assert await resolver.resolve("Light", "philosophy of light") == "https://plato.stanford.edu/entries/light/"
