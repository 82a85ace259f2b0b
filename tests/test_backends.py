import json
import httpx
import pytest
from unittest.mock import AsyncMock
from app.backend.errors import BackendLogicFailure, MalformedResponseFailure, TransportFailure
from app.backend.gas_client import GasApiClient
from app.backend.job_sink import FileJobSink, GasJobSink, InMemoryJobSink
from app.backend.session_store import GasSessionStore, InMemorySessionStore
from app.models.dto import JobRecord, SessionState

GAS_URL = "https://script.example.com/exec"


def make_client(handler) -> GasApiClient:
    return GasApiClient(GAS_URL, api_key="secret", transport=httpx.MockTransport(handler))


def ok(result):
    return lambda request: httpx.Response(200, json={"ok": True, "result": result})


def make_job(**overrides) -> JobRecord:
    fields = dict(chat_id=42, client_name="Jordan Alvarez", vehicle_info="Honda Civic 2018", notes="Noise")
    fields.update(overrides)
    return JobRecord(**fields)


# --- GasApiClient ---

@pytest.mark.asyncio
async def test_client_sends_envelope_and_returns_result():
    seen = {}

    def handler(request: httpx.Request):
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "result": [1, 2]})

    result = await make_client(handler).call("QUERY_JOBS", chatId=42)
    assert result == [1, 2]
    assert seen == {"apiKey": "secret", "action": "QUERY_JOBS", "chatId": 42}


@pytest.mark.asyncio
async def test_client_network_error_is_transport_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportFailure):
        await make_client(handler).call("READ_SESSION", userId=1)


@pytest.mark.asyncio
async def test_client_http_error_is_transport_failure():
    with pytest.raises(TransportFailure) as exc:
        await make_client(lambda r: httpx.Response(503, text="busy")).call("READ_SESSION", userId=1)
    assert "503" in str(exc.value)


@pytest.mark.asyncio
async def test_client_ok_false_is_logic_failure():
    handler = lambda r: httpx.Response(200, json={"ok": False, "error": "Invalid apiKey"})
    with pytest.raises(BackendLogicFailure) as exc:
        await make_client(handler).call("SAVE_JOB", jobData={})
    assert "Invalid apiKey" in str(exc.value)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>Sign in</html>"),
        httpx.Response(200, json=[1, 2, 3]),
        httpx.Response(200, json={"result": "no ok flag"}),
    ],
)
async def test_client_bad_body_is_malformed(response):
    with pytest.raises(MalformedResponseFailure):
        await make_client(lambda r: response).call("READ_SESSION", userId=1)


def test_client_requires_url():
    with pytest.raises(ValueError):
        GasApiClient("")


# --- Session stores ---

@pytest.mark.asyncio
async def test_gas_session_read_parses_string_temp_data():
    store = GasSessionStore(make_client(ok({
        "current_step": "AWAIT_VEHICLE",
        "temp_data": json.dumps({"client_name": "Jordan Alvarez"}),
    })))
    state = await store.read(7)
    assert state == SessionState(step="AWAIT_VEHICLE", data={"client_name": "Jordan Alvarez"})


@pytest.mark.asyncio
async def test_gas_session_read_unknown_user_is_idle():
    store = GasSessionStore(make_client(ok(None)))
    assert await store.read(7) == SessionState()


@pytest.mark.asyncio
async def test_gas_session_read_keeps_unknown_step():
    store = GasSessionStore(make_client(ok({"current_step": "AWAIT_DESC", "temp_data": {}})))
    state = await store.read(7)
    assert state.step == "AWAIT_DESC"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "handler",
    [
        lambda r: httpx.Response(500),
        lambda r: httpx.Response(200, json={"ok": False, "error": "sheet locked"}),
        lambda r: httpx.Response(200, text="not json"),
        ok({"current_step": "AWAIT_NAME", "temp_data": "{broken"}),
        ok("just a string"),
    ],
)
async def test_gas_session_read_failure_falls_back_to_idle(handler):
    store = GasSessionStore(make_client(handler))
    assert await store.read(7) == SessionState()


@pytest.mark.asyncio
async def test_gas_session_write_and_clear_payloads():
    calls = []

    def handler(request):
        calls.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "result": None})

    store = GasSessionStore(make_client(handler))
    assert await store.write(7, SessionState(step="AWAIT_VEHICLE", data={"client_name": "Jordan"})) is True
    assert await store.clear(7) is True

    assert calls[0]["action"] == "WRITE_SESSION"
    assert calls[0]["currentStep"] == "AWAIT_VEHICLE"
    assert calls[0]["tempData"] == {"client_name": "Jordan"}
    assert calls[0]["isClear"] is False
    assert calls[1]["currentStep"] == "IDLE"
    assert calls[1]["tempData"] == {}
    assert calls[1]["isClear"] is True


@pytest.mark.asyncio
async def test_gas_session_write_failure_returns_false():
    store = GasSessionStore(make_client(lambda r: httpx.Response(502)))
    assert await store.write(7, SessionState(step="AWAIT_NAME")) is False
    assert await store.clear(7) is False


@pytest.mark.asyncio
async def test_in_memory_session_store_roundtrip():
    store = InMemorySessionStore()
    state = SessionState(step="AWAIT_VEHICLE", data={"client_name": "Jordan"})
    await store.write(1, state)
    loaded = await store.read(1)
    assert loaded == state
    loaded.data["client_name"] = "changed"
    assert (await store.read(1)).data["client_name"] == "Jordan"
    await store.clear(1)
    assert await store.read(1) == SessionState()


# --- Job sinks ---

@pytest.mark.asyncio
@pytest.mark.parametrize("result,expected", [("15", "15"), (15, "15"), ({"ID": 9}, "9"), ({"id": "A-1"}, "A-1")])
async def test_gas_job_save_returns_id(result, expected):
    sink = GasJobSink(make_client(ok(result)))
    assert await sink.save(make_job()) == expected


@pytest.mark.asyncio
async def test_gas_job_save_sends_wire_fields():
    seen = {}

    def handler(request):
        seen.update(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "result": "1"})

    await GasJobSink(make_client(handler)).save(make_job(status="SCHEDULED", idempotency_key="42:3"))
    job_data = seen["jobData"]
    assert job_data["client_name"] == "Jordan Alvarez"
    assert job_data["status"] == "SCHEDULED"
    assert job_data["is_lead"] is False
    assert job_data["idempotency_key"] == "42:3"
    assert "ID" not in job_data


@pytest.mark.asyncio
@pytest.mark.parametrize("result", [None, True, {"saved": True}, ""])
async def test_gas_job_save_without_id_is_malformed(result):
    with pytest.raises(MalformedResponseFailure):
        await GasJobSink(make_client(ok(result))).save(make_job())


@pytest.mark.asyncio
async def test_gas_job_save_transport_failure():
    with pytest.raises(TransportFailure):
        await GasJobSink(make_client(lambda r: httpx.Response(500))).save(make_job())


@pytest.mark.asyncio
async def test_gas_job_query_keeps_order():
    rows = [
        {"ID": 1, "chat_id": 42, "client_name": "A", "vehicle_info": "Civic", "status": "DELIVERED", "progress": 100},
        {"ID": 2, "chat_id": 42, "client_name": "A", "vehicle_info": "Civic", "status": "IN_PROGRESS", "progress": ""},
    ]
    jobs = await GasJobSink(make_client(ok(rows))).query(42)
    assert [j.id for j in jobs] == ["1", "2"]
    assert jobs[-1].progress == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("result", [{"not": "a list"}, [{"ID": 1}]])
async def test_gas_job_query_malformed(result):
    with pytest.raises(MalformedResponseFailure):
        await GasJobSink(make_client(ok(result))).query(42)


@pytest.mark.asyncio
async def test_in_memory_sink_deduplicates_by_key():
    sink = InMemoryJobSink()
    first = await sink.save(make_job(idempotency_key="42:1"))
    second = await sink.save(make_job(idempotency_key="42:1"))
    third = await sink.save(make_job(idempotency_key="42:2"))
    assert first == second
    assert third != first
    assert len(sink.jobs) == 2


@pytest.mark.asyncio
async def test_file_sink_appends_and_queries(tmp_path):
    path = tmp_path / "jobs.json"
    sink = FileJobSink(path)
    await sink.save(make_job(notes="first"))
    await sink.save(make_job(chat_id=99, notes="other chat"))
    await sink.save(make_job(notes="second", idempotency_key="42:5"))
    await sink.save(make_job(notes="second again", idempotency_key="42:5"))

    jobs = await sink.query(42)
    assert [j.notes for j in jobs] == ["first", "second"]
    assert all(j.created_at for j in jobs)
    assert len(json.loads(path.read_text(encoding="utf-8"))) == 3


@pytest.mark.asyncio
async def test_file_sink_corrupt_file_is_malformed(tmp_path):
    path = tmp_path / "jobs.json"
    path.write_text("{oops", encoding="utf-8")
    with pytest.raises(MalformedResponseFailure):
        await FileJobSink(path).query(42)


@pytest.mark.asyncio
async def test_notify_staff_swallows_errors():
    notifier = AsyncMock(side_effect=RuntimeError("telegram down"))
    sink = InMemoryJobSink(notifier=notifier)
    await sink.notify_staff("hello")
    notifier.assert_awaited_once_with("hello")


@pytest.mark.asyncio
async def test_notify_staff_without_notifier_is_noop():
    await InMemoryJobSink().notify_staff("hello")


@pytest.mark.asyncio
async def test_gas_job_query_accepts_numeric_cells():
    rows = [
        {"ID": 1, "chat_id": 5, "client_name": "Sam", "vehicle_info": 2018, "notes": 42, "status": "LEAD"},
        {"ID": 2, "chat_id": 5, "client_name": "Sam", "vehicle_info": "Honda Civic", "status": "IN_PROGRESS", "progress": 40},
    ]
    sink = GasJobSink(make_client(ok(rows)))
    jobs = await sink.query(5)
    assert jobs[0].vehicle_info == "2018"
    assert jobs[0].notes == "42"

    from app.services.intake import IntakeService
    from app.utils.background import BackgroundTasks

    reply = await IntakeService(InMemorySessionStore(), sink, BackgroundTasks()).status(5)
    assert "Honda Civic" in reply
    assert "[████░░░░░░] 40%" in reply


@pytest.mark.asyncio
async def test_start_replaces_backend_session():
    calls = []

    def handler(request):
        calls.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "result": None})

    from app.services.intake import IntakeService
    from app.utils.background import BackgroundTasks

    service = IntakeService(GasSessionStore(make_client(handler)), InMemoryJobSink(), BackgroundTasks())
    await service.start(7)

    assert calls == [{
        "apiKey": "secret",
        "action": "WRITE_SESSION",
        "userId": 7,
        "currentStep": "AWAIT_NAME",
        "tempData": {},
        "isClear": True,
    }]


@pytest.mark.asyncio
async def test_in_memory_reset_keeps_new_step():
    store = InMemorySessionStore()
    await store.write(1, SessionState(step="AWAIT_VEHICLE", data={"client_name": "Jordan"}))
    assert await store.reset(1, SessionState(step="AWAIT_NAME")) is True
    assert await store.read(1) == SessionState(step="AWAIT_NAME", data={})


@pytest.mark.asyncio
async def test_client_invalid_url_is_transport_failure():
    def handler(request):
        raise httpx.InvalidURL("Invalid non-printable ASCII character in URL")

    with pytest.raises(TransportFailure):
        await make_client(handler).call("READ_SESSION", userId=1)

    store = GasSessionStore(make_client(handler))
    assert await store.read(7) == SessionState()
