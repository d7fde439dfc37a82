# =============================================================================
# practice_core/offline/remote_apply.py
# Backends that apply queued mutations to the practice database
# =============================================================================
"""
Remote apply functions used by SyncQueue.

Contract: ``apply(table, operation, payload)`` returns normally (or True) on
success and raises RemoteApplyError (or returns False) on failure. Both
implementations are safe to retry for updates and deletes; a retried insert
can create a duplicate row if the first acknowledgement was lost.
"""

from __future__ import annotations
from typing import Any, Dict, Optional
import logging

import requests

from practice_core.errors import ConfigurationError, RemoteApplyError
from practice_core.offline.config import OfflineSyncConfig
from practice_core.offline.models import MutationOperation

logger = logging.getLogger(__name__)


# Logical table name -> REST resource under /api/practices/{practice_id}/
TABLE_ENDPOINTS = {
    "users": "users",
    "employees": "employees",
    "tasks": "tasks",
    "incidents": "incidents",
    "complaints": "complaints",
    "policy_documents": "policies",
    "training_records": "training-records",
    "process_templates": "process-templates",
    "notifications": "notifications",
}


def _require_mapping(table: str, operation: MutationOperation, payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise RemoteApplyError(
            f"Payload for {operation.value} on {table} must be an object",
            table=table,
            operation=operation.value,
        )
    return payload


def _require_record_id(table: str, operation: MutationOperation, payload: Dict[str, Any]) -> Any:
    record_id = payload.get("id")
    if record_id in (None, ""):
        raise RemoteApplyError(
            f"{operation.value.capitalize()} on {table} needs an 'id'",
            table=table,
            operation=operation.value,
        )
    return record_id


class HttpRemoteApply:
    """
    Applies mutations through the practice REST API.

    insert -> POST   /api/practices/{practice_id}/{endpoint}
    update -> PATCH  /api/practices/{practice_id}/{endpoint}/{id}  (body without id)
    delete -> DELETE /api/practices/{practice_id}/{endpoint}/{id}
    """

    def __init__(
        self,
        base_url: str,
        api_token: Optional[str] = None,
        timeout: float = 10.0,
        default_practice_id: Optional[str] = None,
        session: Optional[requests.Session] = None,
        endpoints: Optional[Dict[str, str]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.default_practice_id = default_practice_id
        self.endpoints = dict(TABLE_ENDPOINTS, **(endpoints or {}))

        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if api_token:
            self.session.headers["Authorization"] = f"Bearer {api_token}"

    def endpoint_for(self, table: str) -> str:
        return self.endpoints.get(table, table)

    def _practice_id(self, payload: Dict[str, Any]) -> Optional[str]:
        return payload.get("practiceId") or payload.get("practice_id") or self.default_practice_id

    def __call__(self, table: str, operation: str, payload: Any) -> bool:
        op = MutationOperation(operation)
        data = _require_mapping(table, op, payload)

        practice_id = self._practice_id(data)
        if not practice_id:
            raise RemoteApplyError(
                f"No practice id found for {op.value} on {table}",
                table=table,
                operation=op.value,
            )

        url = f"{self.base_url}/api/practices/{practice_id}/{self.endpoint_for(table)}"

        if op is MutationOperation.INSERT:
            self._make_request("POST", url, table, op, body=data)
        elif op is MutationOperation.UPDATE:
            record_id = _require_record_id(table, op, data)
            body = {k: v for k, v in data.items() if k != "id"}
            self._make_request("PATCH", f"{url}/{record_id}", table, op, body=body)
        else:
            record_id = _require_record_id(table, op, data)
            self._make_request("DELETE", f"{url}/{record_id}", table, op)

        return True

    def _make_request(
        self,
        method: str,
        url: str,
        table: str,
        operation: MutationOperation,
        body: Optional[Dict[str, Any]] = None,
    ) -> requests.Response:
        """
        Send one request, turning transport errors and non-2xx into RemoteApplyError.
        """
        try:
            response = self.session.request(
                method=method,
                url=url,
                json=body,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise RemoteApplyError(
                f"{method} {url} failed: {e}",
                table=table,
                operation=operation.value,
            ) from e

        if not response.ok:
            raise RemoteApplyError(
                response.text or f"{operation.value.capitalize()} failed: {response.status_code}",
                table=table,
                operation=operation.value,
                status_code=response.status_code,
            )

        logger.debug(f"{method} {url} -> {response.status_code}")
        return response


class SupabaseRemoteApply:
    """Applies mutations directly to Supabase tables."""

    def __init__(self, client: Any, table_mapping: Optional[Dict[str, str]] = None):
        self.client = client
        self.table_mapping = table_mapping or {}

    def __call__(self, table: str, operation: str, payload: Any) -> bool:
        op = MutationOperation(operation)
        data = _require_mapping(table, op, payload)
        remote_table = self.table_mapping.get(table, table)

        try:
            if op is MutationOperation.INSERT:
                self.client.table(remote_table).insert(data).execute()
            elif op is MutationOperation.UPDATE:
                record_id = _require_record_id(table, op, data)
                body = {k: v for k, v in data.items() if k != "id"}
                self.client.table(remote_table).update(body).eq("id", record_id).execute()
            else:
                record_id = _require_record_id(table, op, data)
                self.client.table(remote_table).delete().eq("id", record_id).execute()
        except RemoteApplyError:
            raise
        except Exception as e:
            raise RemoteApplyError(
                f"Supabase {op.value} on {remote_table} failed: {e}",
                table=table,
                operation=op.value,
            ) from e

        return True


def build_remote_apply(config: OfflineSyncConfig):
    """
    Create the remote apply function selected by config.backend.

    Raises:
        ConfigurationError: when the backend's connection settings are missing
    """
    if config.backend == "http":
        if not config.api_base_url:
            raise ConfigurationError("api_base_url is required for the http backend", config_key="api_base_url")
        return HttpRemoteApply(
            base_url=config.api_base_url,
            api_token=config.api_token,
            timeout=config.request_timeout,
            default_practice_id=config.default_practice_id,
        )

    if config.backend == "supabase":
        if not (config.supabase_url and config.supabase_key):
            raise ConfigurationError("supabase_url and supabase_key are required", config_key="supabase_url")
        from supabase import create_client
        return SupabaseRemoteApply(create_client(config.supabase_url, config.supabase_key))

    raise ConfigurationError(f"Unsupported sync backend {config.backend!r}", config_key="backend")
