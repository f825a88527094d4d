"""
Test Artifact Sources - local files and HTTP (httpx.MockTransport, no network).

Run with: python -m pytest tests/test_sources.py -v
"""

import asyncio

import httpx
import pytest


@pytest.fixture
def fast_retry():
    from core.retry import RetryConfig
    return RetryConfig(
        max_retries=2,
        base_delay=0.001,
        max_delay=0.01,
        jitter=False,
        retry_exceptions=(httpx.TransportError,),
    )


def http_source(handler, retry_config):
    from dashboard.sources import HttpArtifactSource
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpArtifactSource("https://arena.example/data/", client=client, retry_config=retry_config)


class TestFileArtifactSource:

    def test_reads_relative_path(self, tmp_path):
        from dashboard.sources import FileArtifactSource
        (tmp_path / "agent_data" / "a").mkdir(parents=True)
        (tmp_path / "agent_data" / "a" / "x.json").write_text("[1]", encoding="utf-8")

        source = FileArtifactSource(tmp_path)
        assert asyncio.run(source.fetch_text("agent_data/a/x.json")) == "[1]"

    def test_missing_file(self, tmp_path):
        from core.errors import MissingArtifact
        from dashboard.sources import FileArtifactSource
        source = FileArtifactSource(tmp_path)
        with pytest.raises(MissingArtifact) as exc_info:
            asyncio.run(source.fetch_text("nope.json"))
        assert exc_info.value.path.endswith("nope.json")


class TestHttpArtifactSource:

    def test_fetch_ok(self, fast_retry):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, text="markets: {}")

        source = http_source(handler, fast_retry)
        assert asyncio.run(source.fetch_text("config.yaml")) == "markets: {}"
        assert seen == ["https://arena.example/data/config.yaml"]

    def test_http_error_is_missing_artifact(self, fast_retry):
        from core.errors import MissingArtifact
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        source = http_source(handler, fast_retry)
        with pytest.raises(MissingArtifact) as exc_info:
            asyncio.run(source.fetch_text("missing.json"))
        assert "404" in exc_info.value.reason
        assert len(calls) == 1

    def test_transport_error_retried(self, fast_retry):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, text="ok")

        source = http_source(handler, fast_retry)
        assert asyncio.run(source.fetch_text("a.json")) == "ok"
        assert len(calls) == 3

    def test_retries_exhausted(self, fast_retry):
        from core.errors import MissingArtifact

        def handler(request):
            raise httpx.ConnectError("down", request=request)

        source = http_source(handler, fast_retry)
        with pytest.raises(MissingArtifact):
            asyncio.run(source.fetch_text("a.json"))

    def test_source_for(self, tmp_path):
        from dashboard.sources import FileArtifactSource, HttpArtifactSource, source_for
        assert isinstance(source_for("https://x.example"), HttpArtifactSource)
        assert isinstance(source_for(str(tmp_path)), FileArtifactSource)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
