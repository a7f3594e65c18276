"""Tests for the tolerant notes API client.

Uses httpx.MockTransport so every exchange stays in-process.
"""
import json

import httpx
import pytest

from notesync.exceptions import ConfigurationError, TransportFailureError
from notesync.observability import metrics
from notesync.remote.client import NotesApiClient, Outcome, normalize_note

BASE_URL = "http://notes.test"


class Recorder:
    """Routes requests to canned responses and remembers them."""

    def __init__(self, routes=None, default=None):
        self.routes = routes or {}
        self.default = default or (lambda request: httpx.Response(404))
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path), self.default)
        return route(request) if callable(route) else route

    @property
    def seen(self):
        return [(r.method, r.url.path) for r in self.requests]


def make_client(recorder, base_url=BASE_URL):
    return NotesApiClient(base_url, transport=httpx.MockTransport(recorder))


class TestUnconfigured:

    @pytest.mark.parametrize("base_url", [None, "", "   "])
    def test_every_operation_is_unconfigured(self, base_url):
        client = NotesApiClient(base_url)
        assert not client.is_configured
        assert client.fetch_all().outcome is Outcome.UNCONFIGURED
        assert client.create("t", "c").outcome is Outcome.UNCONFIGURED
        assert client.update("a", "t", "c").outcome is Outcome.UNCONFIGURED
        assert client.delete("a").outcome is Outcome.UNCONFIGURED
        client.close()

    def test_trailing_slash_is_trimmed(self):
        with NotesApiClient("http://notes.test/ ") as client:
            assert client.base_url == "http://notes.test"

    def test_request_without_transport_is_a_configuration_error(self):
        client = NotesApiClient(None)
        with pytest.raises(ConfigurationError):
            client._request("GET", "/notes")


class TestFetchAll:

    def test_bare_array(self):
        recorder = Recorder({("GET", "/notes"): httpx.Response(200, json=[
            {"id": "a", "title": "Alpha", "content": "x",
             "createdAt": "2025-01-01T00:00:00Z", "updatedAt": "2025-01-02T00:00:00Z"},
        ])})
        result = make_client(recorder).fetch_all()
        assert result.has_value
        assert [n.id for n in result.value] == ["a"]
        assert result.value[0].updated_at.isoformat() == "2025-01-02T00:00:00+00:00"
        assert recorder.seen == [("GET", "/notes")]

    @pytest.mark.parametrize("field", ["notes", "items", "data"])
    def test_wrapped_array(self, field):
        recorder = Recorder({("GET", "/notes"): httpx.Response(200, json={field: [{"id": "b"}]})})
        result = make_client(recorder).fetch_all()
        assert [n.id for n in result.value] == ["b"]

    def test_falls_back_to_second_path(self):
        recorder = Recorder({("GET", "/api/notes"): httpx.Response(200, json=[{"id": "c"}])})
        result = make_client(recorder).fetch_all()
        assert [n.id for n in result.value] == ["c"]
        assert recorder.seen == [("GET", "/notes"), ("GET", "/api/notes")]
        data = metrics.get_metrics()["fetch_all"]
        assert data["unavailable_count"] == 1
        assert data["ok_count"] == 1

    def test_unexpected_shape_is_unavailable(self):
        recorder = Recorder(default=lambda request: httpx.Response(200, json={"count": 0}))
        result = make_client(recorder).fetch_all()
        assert result.outcome is Outcome.UNAVAILABLE
        assert result.error == "Unexpected response shape from /api/notes"

    def test_plain_text_success_is_unavailable(self):
        recorder = Recorder(default=lambda request: httpx.Response(200, text="ok"))
        assert make_client(recorder).fetch_all().outcome is Outcome.UNAVAILABLE

    def test_non_object_items_are_skipped(self):
        recorder = Recorder({("GET", "/notes"): httpx.Response(200, json=[{"id": "a"}, 7, "x"])})
        assert [n.id for n in make_client(recorder).fetch_all().value] == ["a"]

    @pytest.mark.parametrize("status,kwargs,message", [
        (500, {"json": {"detail": "database offline"}}, "database offline"),
        (400, {"json": {"message": "bad request body"}}, "bad request body"),
        (503, {"text": "Service Unavailable"}, "Service Unavailable"),
        (502, {}, "Request failed: 502"),
    ])
    def test_error_message_from_body(self, status, kwargs, message):
        recorder = Recorder(default=lambda request: httpx.Response(status, **kwargs))
        result = make_client(recorder).fetch_all()
        assert result.outcome is Outcome.UNAVAILABLE
        assert result.error == message

    def test_unreachable_host_is_unavailable(self):
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        recorder = Recorder(default=refuse)
        result = make_client(recorder).fetch_all()
        assert result.outcome is Outcome.UNAVAILABLE
        assert result.error == "Connection refused"
        assert len(recorder.requests) == 2

    def test_timeout_is_unavailable(self):
        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        assert make_client(Recorder(default=slow)).fetch_all().outcome is Outcome.UNAVAILABLE

    def test_redirect_loop_is_a_transport_failure(self):
        def loop(request):
            raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=request)

        recorder = Recorder(default=loop)
        with pytest.raises(TransportFailureError) as exc_info:
            make_client(recorder).fetch_all()
        assert "redirects" in exc_info.value.message
        assert exc_info.value.details["operation"] == "fetch_all"
        assert len(recorder.requests) == 1
        assert metrics.get_metrics()["fetch_all"]["failed_count"] == 1

    def test_invalid_url_is_a_transport_failure(self):
        def bad(request):
            raise httpx.InvalidURL("Invalid non-printable ASCII character in URL")

        with pytest.raises(TransportFailureError):
            make_client(Recorder(default=bad)).fetch_all()


class TestCreate:

    def test_returns_server_note(self):
        def created(request):
            body = json.loads(request.content)
            return httpx.Response(201, json={"id": 17, **body})

        recorder = Recorder({("POST", "/notes"): created})
        result = make_client(recorder).create("Untitled", "")
        assert result.has_value
        assert result.value.id == "17"
        assert result.value.title == "Untitled"
        request = recorder.requests[0]
        assert request.headers["content-type"] == "application/json"
        assert json.loads(request.content) == {"title": "Untitled", "content": ""}

    def test_non_object_success_stops_probing(self):
        recorder = Recorder({("POST", "/notes"): httpx.Response(201, json=[])})
        result = make_client(recorder).create("t", "c")
        assert result.outcome is Outcome.UNAVAILABLE
        assert recorder.seen == [("POST", "/notes")]

    def test_all_paths_failing_is_unavailable(self):
        recorder = Recorder()
        result = make_client(recorder).create("t", "c")
        assert result.outcome is Outcome.UNAVAILABLE
        assert recorder.seen == [("POST", "/notes"), ("POST", "/api/notes")]


class TestUpdate:

    def test_put_then_patch(self):
        recorder = Recorder(
            {("PATCH", "/notes/a"): lambda request: httpx.Response(
                200, json={"id": "a", **json.loads(request.content)}
            )},
            default=lambda request: httpx.Response(405),
        )
        result = make_client(recorder).update("a", "Title", "Body")
        assert result.value.content == "Body"
        assert recorder.seen == [
            ("PUT", "/notes/a"),
            ("PUT", "/api/notes/a"),
            ("PATCH", "/notes/a"),
        ]

    def test_id_is_url_encoded(self):
        recorder = Recorder()
        make_client(recorder).update("a/b c", "t", "c")
        assert b"/notes/a%2Fb%20c" in recorder.requests[0].url.raw_path

    def test_every_candidate_failing_is_unavailable(self):
        recorder = Recorder(default=lambda request: httpx.Response(500, json={"detail": "nope"}))
        result = make_client(recorder).update("a", "t", "c")
        assert result.outcome is Outcome.UNAVAILABLE
        assert result.error == "nope"
        assert len(recorder.requests) == 4

    def test_acknowledgement_body_reports_no_fields(self):
        recorder = Recorder({("PUT", "/notes/a"): httpx.Response(200, json={"ok": True})})
        result = make_client(recorder).update("a", "Title", "Body")
        assert result.has_value
        assert result.value.model_fields_set == set()


class TestDelete:

    def test_no_content_is_success(self):
        recorder = Recorder({("DELETE", "/api/notes/a"): httpx.Response(204)})
        result = make_client(recorder).delete("a")
        assert result.has_value
        assert result.value is True
        assert recorder.seen == [("DELETE", "/notes/a"), ("DELETE", "/api/notes/a")]

    def test_not_found_everywhere_is_unavailable(self):
        assert make_client(Recorder()).delete("a").outcome is Outcome.UNAVAILABLE


class TestNormalizeNote:

    def test_snake_case_and_alternate_names(self):
        note = normalize_note({
            "note_id": 5,
            "title": "T",
            "body": "from body",
            "created_at": "2025-05-01T08:00:00",
            "modified_at": "2025-05-02T08:00:00+02:00",
        })
        assert note.id == "5"
        assert note.content == "from body"
        assert note.created_at.tzinfo is not None
        assert note.updated_at.isoformat() == "2025-05-02T08:00:00+02:00"

    def test_camel_case_wins(self):
        note = normalize_note({
            "id": "x",
            "updatedAt": "2025-05-03T00:00:00Z",
            "updated_at": "2020-01-01T00:00:00Z",
        })
        assert note.updated_at.year == 2025

    def test_missing_fields_are_filled(self):
        note = normalize_note({"title": None, "createdAt": "garbage"})
        assert note.id.startswith("n_")
        assert note.title == ""
        assert note.content == ""
        assert note.created_at.tzinfo is not None

    def test_fields_set_lists_only_sent_fields(self):
        note = normalize_note({"id": "a", "title": "T", "updatedAt": "2025-05-03T00:00:00Z"})
        assert note.model_fields_set == {"id", "title", "updated_at"}
        assert normalize_note({"ok": True, "id": "  "}).model_fields_set == set()
