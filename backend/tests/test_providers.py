"""Tests for provider adapters."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from querycache.core.exceptions import UpstreamError
from querycache.schemas.search import SearchFilters
from querycache.services.providers import FallbackSearchProvider, HttpSearchProvider, build_provider
from tests.conftest import FakeProvider, make_payload


@pytest.fixture
def mock_requests():
    with patch("requests.get") as mock:
        yield mock


def _response(status_code=200, body=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body if body is not None else {}
    return response


class TestHttpSearchProvider:
    @pytest.mark.asyncio
    async def test_fetch_parses_payload(self, mock_requests):
        mock_requests.return_value = _response(body={
            "results": [{"id": "1", "title": "Go", "url": "https://go.dev"}],
            "total_count": 1,
            "search_time": 12.5,
        })
        provider = HttpSearchProvider("https://search.local/api", api_key="secret", timeout=5)

        payload = await provider.fetch("golang", SearchFilters(content_type="web", domain="go.dev"), 2, 10)

        assert payload.total_count == 1
        assert payload.results[0].url == "https://go.dev"
        _, kwargs = mock_requests.call_args
        assert kwargs["params"] == {
            "q": "golang", "page": 2, "limit": 10, "content_type": "web", "domain": "go.dev"
        }
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["timeout"] == 5

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code, code", [
        (429, "rate_limit_exceeded"),
        (500, "provider_error"),
        (503, "provider_error"),
    ])
    async def test_http_errors(self, mock_requests, status_code, code):
        mock_requests.return_value = _response(status_code=status_code)

        with pytest.raises(UpstreamError) as exc:
            await HttpSearchProvider("https://search.local/api").fetch("q", None, 1, 10)
        assert exc.value.code == code

    @pytest.mark.asyncio
    async def test_network_errors(self, mock_requests):
        mock_requests.side_effect = requests.Timeout("slow")
        with pytest.raises(UpstreamError) as exc:
            await HttpSearchProvider("https://search.local/api").fetch("q", None, 1, 10)
        assert exc.value.code == "provider_timeout"

        mock_requests.side_effect = requests.ConnectionError("refused")
        with pytest.raises(UpstreamError) as exc:
            await HttpSearchProvider("https://search.local/api").fetch("q", None, 1, 10)
        assert exc.value.code == "provider_unreachable"

    @pytest.mark.asyncio
    async def test_malformed_body(self, mock_requests):
        mock_requests.return_value = _response(body={"results": "nope"})

        with pytest.raises(UpstreamError) as exc:
            await HttpSearchProvider("https://search.local/api").fetch("q", None, 1, 10)
        assert exc.value.code == "provider_bad_response"


class TestFallbackSearchProvider:
    @pytest.mark.asyncio
    async def test_first_success_wins(self, upstream_error):
        failing = FakeProvider(error=upstream_error)
        working = FakeProvider(payload=make_payload(3))
        unused = FakeProvider()

        payload = await FallbackSearchProvider([failing, working, unused]).fetch("q", None, 1, 10)

        assert payload.total_count == 3
        assert len(failing.calls) == 1
        assert unused.calls == []

    @pytest.mark.asyncio
    async def test_all_failing(self, upstream_error):
        chain = FallbackSearchProvider([FakeProvider(error=upstream_error), FakeProvider(error=upstream_error)])

        with pytest.raises(UpstreamError) as exc:
            await chain.fetch("q", None, 1, 10)
        assert exc.value.code == "all_providers_failed"

    def test_build_provider(self):
        assert isinstance(build_provider(["https://a"]), HttpSearchProvider)
        assert isinstance(build_provider(["https://a", "https://b"]), FallbackSearchProvider)
        with pytest.raises(ValueError):
            build_provider([])
