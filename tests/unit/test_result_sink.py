"""
Unit tests for result sinks.
"""

import pytest
import pytest_asyncio
from httpx import ConnectError, Request, Response
from sqlalchemy.exc import OperationalError

from srp.practice.errors import SubmissionError
from srp.results.ingest import ResultIngestor
from srp.results.schemas import ALREADY_EXISTS, ResultDocument
from srp.results.sink import HttpResultSink, LocalResultSink, build_sink
from srp.results.store import MemoryObjectStore


@pytest.fixture
def document():
    return ResultDocument(
        student_number="12345678",
        week=6,
        topics_run=["organic"],
        started_at="2025-03-03T09:00:00.000Z",
        completed_at="2025-03-03T09:05:00.000Z",
        trials=[{"trial_index": 0, "item_id": "o1", "correct": True}],
    )


@pytest_asyncio.fixture
async def client():
    """HTTP sink instance."""
    sink = HttpResultSink(base_url="http://localhost:8100/", timeout=5)
    yield sink
    await sink.close()


class TestHttpResultSink:
    """Tests for HttpResultSink."""

    @pytest.mark.asyncio
    async def test_client_initialization(self, client):
        assert client.base_url == "http://localhost:8100"

    @pytest.mark.asyncio
    async def test_submit_accepted(self, client, document, monkeypatch):
        sent = {}

        async def fake_post(url, json=None, **kwargs):
            sent["url"] = url
            sent["json"] = json
            return Response(
                201,
                json={"ok": True, "key": "results/6/12345678.json"},
                request=Request("POST", url),
            )

        monkeypatch.setattr(client.client, "post", fake_post)

        outcome = await client.submit(document)

        assert outcome.accepted
        assert outcome.key == "results/6/12345678.json"
        assert sent["url"] == "http://localhost:8100/api/ingest"
        assert sent["json"]["student_number"] == "12345678"
        assert sent["json"]["trials"][0]["item_id"] == "o1"

    @pytest.mark.asyncio
    async def test_submit_duplicate(self, client, document, monkeypatch):
        async def fake_post(url, json=None, **kwargs):
            return Response(
                409,
                json={"ok": False, "reason": ALREADY_EXISTS, "key": "results/6/12345678.json"},
                request=Request("POST", url),
            )

        monkeypatch.setattr(client.client, "post", fake_post)

        outcome = await client.submit(document)

        assert not outcome.accepted
        assert outcome.reason == ALREADY_EXISTS

    @pytest.mark.asyncio
    async def test_submit_server_error(self, client, document, monkeypatch):
        async def fake_post(url, json=None, **kwargs):
            return Response(500, text="boom", request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", fake_post)

        with pytest.raises(SubmissionError, match="500"):
            await client.submit(document)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [200, 201, 409])
    async def test_submit_non_json_body(self, client, document, monkeypatch, status):
        async def fake_post(url, json=None, **kwargs):
            return Response(status, text="<html>proxy page</html>", request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", fake_post)

        with pytest.raises(SubmissionError, match="unreadable response"):
            await client.submit(document)

    @pytest.mark.asyncio
    async def test_submit_json_that_is_not_an_object(self, client, document, monkeypatch):
        async def fake_post(url, json=None, **kwargs):
            return Response(201, json=["ok"], request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", fake_post)

        with pytest.raises(SubmissionError, match="unreadable response"):
            await client.submit(document)

    @pytest.mark.asyncio
    async def test_submit_unreachable(self, client, document, monkeypatch):
        async def fake_post(url, json=None, **kwargs):
            raise ConnectError("Connection refused", request=Request("POST", url))

        monkeypatch.setattr(client.client, "post", fake_post)

        with pytest.raises(SubmissionError, match="Upload failed"):
            await client.submit(document)

    @pytest.mark.asyncio
    async def test_exists(self, client, monkeypatch):
        async def fake_get(url, **kwargs):
            assert url == "http://localhost:8100/api/status/6/12345678"
            return Response(
                200,
                json={"exists": True, "completed_at": "2025-03-03T09:05:00.000Z", "known": True},
                request=Request("GET", url),
            )

        monkeypatch.setattr(client.client, "get", fake_get)

        probe = await client.exists("12345678", 6)

        assert probe.exists
        assert probe.completed_at == "2025-03-03T09:05:00.000Z"

    @pytest.mark.asyncio
    async def test_exists_never_raises(self, client, monkeypatch):
        async def fake_get(url, **kwargs):
            raise ConnectError("Connection refused", request=Request("GET", url))

        monkeypatch.setattr(client.client, "get", fake_get)

        probe = await client.exists("12345678", 6)

        assert not probe.exists
        assert not probe.known

    @pytest.mark.asyncio
    async def test_context_manager(self):
        async with HttpResultSink("http://localhost:8100") as sink:
            assert not sink.client.is_closed
        assert sink.client.is_closed


class TestLocalResultSink:
    """Tests for LocalResultSink."""

    @pytest.mark.asyncio
    async def test_submit_and_exists(self, document):
        sink = LocalResultSink(ResultIngestor(MemoryObjectStore()))

        first = await sink.submit(document)
        second = await sink.submit(document)
        probe = await sink.exists("12345678", 6)

        assert first.accepted
        assert second.reason == ALREADY_EXISTS
        assert probe.exists

    @pytest.mark.asyncio
    async def test_invalid_document_raises(self, document):
        sink = LocalResultSink(ResultIngestor(MemoryObjectStore(), valid_weeks={7}))
        with pytest.raises(SubmissionError, match="Invalid week"):
            await sink.submit(document)

    @pytest.mark.asyncio
    async def test_store_failure_becomes_submission_error(self, document):
        class BrokenStore(MemoryObjectStore):
            def put(self, key, value, **kwargs):
                raise OperationalError("INSERT", {}, Exception("disk I/O error"))

            def get(self, key):
                raise OperationalError("SELECT", {}, Exception("disk I/O error"))

        sink = LocalResultSink(ResultIngestor(BrokenStore()))

        with pytest.raises(SubmissionError, match="write failed"):
            await sink.submit(document)
        probe = await sink.exists("12345678", 6)
        assert not probe.known

    @pytest.mark.asyncio
    async def test_exists_bad_student(self):
        sink = LocalResultSink(ResultIngestor(MemoryObjectStore()))
        probe = await sink.exists("nope", 6)
        assert not probe.known


class TestBuildSink:
    def test_local_by_default(self, settings):
        assert isinstance(build_sink(settings), LocalResultSink)

    @pytest.mark.asyncio
    async def test_http_when_url_set(self, settings):
        sink = build_sink(settings.model_copy(update={"results_url": "https://srp.example.org"}))
        assert isinstance(sink, HttpResultSink)
        assert sink.base_url == "https://srp.example.org"
        await sink.close()
