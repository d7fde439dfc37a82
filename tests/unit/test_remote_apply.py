# =============================================================================
# tests/unit/test_remote_apply.py
# Unit Tests for the HTTP and Supabase remote apply backends
# =============================================================================

from unittest.mock import MagicMock

import pytest
import requests

from practice_core.errors import ConfigurationError, RemoteApplyError
from practice_core.offline.config import OfflineSyncConfig
from practice_core.offline.remote_apply import (
    HttpRemoteApply,
    SupabaseRemoteApply,
    build_remote_apply,
)


def _response(status_code=200, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.text = text
    return response


@pytest.fixture
def session():
    mock = MagicMock()
    mock.headers = {}
    mock.request.return_value = _response(201)
    return mock


@pytest.fixture
def http_apply(session):
    return HttpRemoteApply("https://compliance.example.com/", api_token="secret", session=session)


class TestHttpRemoteApply:

    def test_auth_header_is_set(self, http_apply, session):
        assert session.headers["Authorization"] == "Bearer secret"

    def test_insert_posts_to_collection(self, http_apply, session):
        payload = {"id": "t1", "practice_id": "p1", "title": "Fire drill"}

        assert http_apply("tasks", "insert", payload) is True

        session.request.assert_called_once_with(
            method="POST",
            url="https://compliance.example.com/api/practices/p1/tasks",
            json=payload,
            timeout=10.0,
        )

    def test_update_patches_record_without_id(self, http_apply, session):
        http_apply("training_records", "update", {"id": 7, "practiceId": "p1", "status": "done"})

        kwargs = session.request.call_args.kwargs
        assert kwargs["method"] == "PATCH"
        assert kwargs["url"] == "https://compliance.example.com/api/practices/p1/training-records/7"
        assert kwargs["json"] == {"practiceId": "p1", "status": "done"}

    def test_delete_sends_no_body(self, http_apply, session):
        http_apply("policy_documents", "delete", {"id": "d1", "practice_id": "p1"})

        kwargs = session.request.call_args.kwargs
        assert kwargs["method"] == "DELETE"
        assert kwargs["url"] == "https://compliance.example.com/api/practices/p1/policies/d1"
        assert kwargs["json"] is None

    def test_unknown_table_uses_its_own_name(self, http_apply, session):
        http_apply("audits", "insert", {"practice_id": "p1"})

        assert session.request.call_args.kwargs["url"].endswith("/api/practices/p1/audits")

    def test_default_practice_id(self, session):
        apply = HttpRemoteApply("https://compliance.example.com", default_practice_id="p9", session=session)

        apply("tasks", "insert", {"title": "x"})

        assert "/api/practices/p9/tasks" in session.request.call_args.kwargs["url"]

    def test_missing_practice_id_fails(self, http_apply, session):
        with pytest.raises(RemoteApplyError):
            http_apply("tasks", "insert", {"title": "x"})
        session.request.assert_not_called()

    def test_update_without_id_fails(self, http_apply):
        with pytest.raises(RemoteApplyError):
            http_apply("tasks", "update", {"practice_id": "p1", "status": "done"})

    def test_non_object_payload_fails(self, http_apply):
        with pytest.raises(RemoteApplyError):
            http_apply("tasks", "insert", ["not", "a", "record"])

    def test_error_status_raises_with_body(self, http_apply, session):
        session.request.return_value = _response(409, "Duplicate task")

        with pytest.raises(RemoteApplyError) as exc_info:
            http_apply("tasks", "insert", {"practice_id": "p1"})

        assert exc_info.value.status_code == 409
        assert "Duplicate task" in str(exc_info.value)

    def test_error_status_without_body(self, http_apply, session):
        session.request.return_value = _response(500)

        with pytest.raises(RemoteApplyError, match="Insert failed: 500"):
            http_apply("tasks", "insert", {"practice_id": "p1"})

    def test_transport_error_raises(self, http_apply, session):
        session.request.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(RemoteApplyError):
            http_apply("tasks", "delete", {"id": "t1", "practice_id": "p1"})


class TestSupabaseRemoteApply:

    @pytest.fixture
    def client(self):
        return MagicMock()

    def test_insert(self, client):
        SupabaseRemoteApply(client)("tasks", "insert", {"id": "t1", "title": "x"})

        client.table.assert_called_once_with("tasks")
        client.table.return_value.insert.assert_called_once_with({"id": "t1", "title": "x"})

    def test_update_filters_on_id(self, client):
        SupabaseRemoteApply(client, {"tasks": "practice_tasks"})("tasks", "update", {"id": "t1", "status": "done"})

        client.table.assert_called_once_with("practice_tasks")
        update = client.table.return_value.update
        update.assert_called_once_with({"status": "done"})
        update.return_value.eq.assert_called_once_with("id", "t1")

    def test_delete(self, client):
        SupabaseRemoteApply(client)("complaints", "delete", {"id": "c1"})

        client.table.return_value.delete.return_value.eq.assert_called_once_with("id", "c1")

    def test_client_error_is_wrapped(self, client):
        client.table.return_value.insert.return_value.execute.side_effect = RuntimeError("JWT expired")

        with pytest.raises(RemoteApplyError, match="JWT expired"):
            SupabaseRemoteApply(client)("tasks", "insert", {"id": "t1"})


class TestBuildRemoteApply:

    def test_http_backend(self):
        apply = build_remote_apply(OfflineSyncConfig(api_base_url="https://compliance.example.com", request_timeout=3))

        assert isinstance(apply, HttpRemoteApply)
        assert apply.timeout == 3

    def test_http_backend_needs_url(self):
        with pytest.raises(ConfigurationError):
            build_remote_apply(OfflineSyncConfig())

    def test_supabase_backend_needs_credentials(self):
        with pytest.raises(ConfigurationError):
            build_remote_apply(OfflineSyncConfig(backend="supabase"))
