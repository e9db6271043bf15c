"""Tests for event sinks."""
import httpx
import orjson
import pytest

from lineage_proxy.errors import (
    DuplicateEventError,
    EventNotFoundError,
    InvalidPayloadError,
    SinkWriteError,
)
from lineage_proxy.identifiers import IdentifierGenerator
from lineage_proxy.sinks import DatabaseSink, FilesystemSink, MemorySink, ObjectStoreSink, serialize

OPENLINEAGE_EVENT = {
    "eventType": "COMPLETE",
    "eventTime": "2024-05-01T12:00:00.000Z",
    "run": {"runId": "d46f4f3b-4fa8-4a4e-9a85-1e0f2c9f0a11"},
    "job": {"namespace": "dev", "name": "orders.daily"},
    "inputs": [{"namespace": "pg", "name": "public.orders"}],
    "outputs": [],
    "producer": "https://github.com/OpenLineage/OpenLineage/tree/1.0.0/integration/dbt",
}

gen = IdentifierGenerator()


def test_serialize_is_pretty_and_keeps_key_order():
    data = serialize({"b": 1, "a": [1, 2]})
    assert data == b'{\n  "b": 1,\n  "a": [\n    1,\n    2\n  ]\n}'


def test_serialize_rejects_unserializable():
    with pytest.raises(InvalidPayloadError):
        serialize({"when": object()})
    with pytest.raises(InvalidPayloadError):
        serialize({1: "non-string key"})


@pytest.mark.asyncio
async def test_filesystem_sink_round_trip(tmp_path):
    """Test stored bytes are the deterministic pretty-printed payload."""
    sink = FilesystemSink(tmp_path / "events")
    identifier = gen.generate(1)

    result = await sink.commit(identifier, OPENLINEAGE_EVENT)

    path = tmp_path / "events" / f"{identifier}.json"
    assert result.location == str(path)
    assert result.size_bytes == path.stat().st_size
    stored = await sink.read(identifier)
    assert stored == serialize(OPENLINEAGE_EVENT)
    assert orjson.loads(stored) == OPENLINEAGE_EVENT
    assert await sink.count() == 1
    # No temp files left behind
    assert sorted(p.name for p in (tmp_path / "events").iterdir()) == [f"{identifier}.json"]


@pytest.mark.asyncio
async def test_filesystem_sink_recommit_is_idempotent(tmp_path):
    sink = FilesystemSink(tmp_path)
    identifier = gen.generate(3)
    await sink.commit(identifier, {"a": 1})
    await sink.commit(identifier, {"a": 1})
    assert await sink.read(identifier) == serialize({"a": 1})
    assert await sink.count() == 1


@pytest.mark.asyncio
async def test_filesystem_sink_write_failure(tmp_path):
    """Test an unwritable target raises SinkWriteError with the identifier."""
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    sink = FilesystemSink(blocker / "events")
    identifier = gen.generate(1)

    with pytest.raises(SinkWriteError) as exc_info:
        await sink.commit(identifier, {"a": 1})
    assert exc_info.value.details["identifier"] == identifier
    assert await sink.health_check() is False


@pytest.mark.asyncio
async def test_filesystem_sink_rejects_unsafe_identifier(tmp_path):
    sink = FilesystemSink(tmp_path)
    with pytest.raises(ValueError):
        await sink.commit("../escape", {"a": 1})
    with pytest.raises(ValueError):
        await sink.read("../../etc/passwd")


@pytest.mark.asyncio
async def test_filesystem_sink_missing_event(tmp_path):
    sink = FilesystemSink(tmp_path)
    with pytest.raises(EventNotFoundError):
        await sink.read(gen.generate(9))


@pytest.mark.asyncio
async def test_memory_sink_duplicates():
    sink = MemorySink()
    identifier = gen.generate(1)
    await sink.commit(identifier, {"a": 1})
    await sink.commit(identifier, {"a": 1})
    with pytest.raises(DuplicateEventError):
        await sink.commit(identifier, {"a": 2})
    assert await sink.count() == 1


@pytest.mark.asyncio
async def test_object_store_sink_puts_json():
    """Test object store sink PUTs pretty JSON with auth and content type."""
    received = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "PUT":
            received["url"] = str(request.url)
            received["headers"] = request.headers
            received["body"] = request.content
            return httpx.Response(200, json={"url": str(request.url)})
        if request.method == "GET":
            if str(request.url) == received.get("url"):
                return httpx.Response(200, content=received["body"])
            return httpx.Response(404)
        return httpx.Response(405)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    sink = ObjectStoreSink("https://blob.example.com/lineage/", token="secret", client=client)
    identifier = gen.generate(12)

    result = await sink.commit(identifier, OPENLINEAGE_EVENT)

    assert result.location == f"https://blob.example.com/lineage/{identifier}.json"
    assert received["headers"]["content-type"] == "application/json"
    assert received["headers"]["authorization"] == "Bearer secret"
    assert received["body"] == serialize(OPENLINEAGE_EVENT)
    assert await sink.read(identifier) == serialize(OPENLINEAGE_EVENT)
    with pytest.raises(EventNotFoundError):
        await sink.read(gen.generate(13))
    assert await sink.count() is None
    await sink.close()


@pytest.mark.asyncio
async def test_object_store_sink_rejected_write():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(507)))
    sink = ObjectStoreSink("https://blob.example.com/lineage", client=client)

    with pytest.raises(SinkWriteError) as exc_info:
        await sink.commit(gen.generate(1), {"a": 1})
    assert exc_info.value.details["status_code"] == 507


@pytest.mark.asyncio
async def test_object_store_sink_network_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    sink = ObjectStoreSink("https://blob.example.com/lineage", client=client)

    with pytest.raises(SinkWriteError):
        await sink.commit(gen.generate(1), {"a": 1})
    assert await sink.health_check() is False


@pytest.mark.asyncio
async def test_database_sink_round_trip(tmp_path):
    """Test database sink stores exact bytes and indexes OpenLineage fields."""
    sink = DatabaseSink(f"sqlite:///{tmp_path / 'lineage.db'}")
    identifier = gen.generate(5)

    result = await sink.commit(identifier, OPENLINEAGE_EVENT)

    assert result.location.startswith("openlineage_events/")
    assert await sink.read(identifier) == serialize(OPENLINEAGE_EVENT)
    assert await sink.count() == 1
    assert await sink.health_check() is True

    from lineage_proxy.sinks.database import LineageEventRecord
    with sink._session_factory() as session:
        row = session.query(LineageEventRecord).one()
    assert row.sort_key == "005"
    assert row.event_type == "COMPLETE"
    assert row.job_namespace == "dev"
    assert row.job_name == "orders.daily"
    assert row.run_id == "d46f4f3b-4fa8-4a4e-9a85-1e0f2c9f0a11"
    await sink.close()


@pytest.mark.asyncio
async def test_database_sink_duplicate_identifier(tmp_path):
    sink = DatabaseSink(f"sqlite:///{tmp_path / 'lineage.db'}")
    identifier = gen.generate(1)
    await sink.commit(identifier, {"a": 1})

    with pytest.raises(DuplicateEventError):
        await sink.commit(identifier, {"a": 1})
    with pytest.raises(EventNotFoundError):
        await sink.read(gen.generate(2))
    await sink.close()


@pytest.mark.asyncio
async def test_database_sink_accepts_non_object_payload(tmp_path):
    sink = DatabaseSink(f"sqlite:///{tmp_path / 'lineage.db'}")
    identifier = gen.generate()
    await sink.commit(identifier, [1, 2, 3])
    assert orjson.loads(await sink.read(identifier)) == [1, 2, 3]
    await sink.close()
