"""
HERA Universal API - Supabase RPC gateway

Every read and write goes through a Postgres function called over
Supabase/PostgREST. This module owns the lazily-created service-role
client and the single ``call_rpc`` entry point used by the routers.

Error mapping:
- Connection failures (the request never reached Postgres) are retried
  with exponential backoff, then surface as 503.
- Postgres errors are passed through verbatim: SQLSTATE classes 22/23,
  P0001/P0002 and PostgREST request errors become 400, anything else 500.
- A JSON result of the form ``{"success": false, "error": ...}`` is
  treated as a 400 rejection from the procedure.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from postgrest.exceptions import APIError
from starlette.concurrency import run_in_threadpool
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from supabase import Client, ClientOptions, create_client

from .config import Settings, get_settings
from .core.errors import RpcError, UpstreamUnavailableError
from .core.logging import LogContext, Timer

logger = logging.getLogger(__name__)

# RPC names
RPC_ENTITY_UPSERT = "hera_entity_upsert_v1"
RPC_ENTITY_READ = "hera_entity_read_v1"
RPC_ENTITY_DELETE = "hera_entity_delete_v1"
RPC_DYNAMIC_SET = "hera_dynamic_data_set_v1"
RPC_DYNAMIC_BATCH = "hera_dynamic_data_batch_v1"
RPC_DYNAMIC_GET = "hera_dynamic_data_get_v1"
RPC_DYNAMIC_DELETE = "hera_dynamic_data_delete_v1"
RPC_RELATIONSHIP_UPSERT = "hera_relationship_upsert_v1"
RPC_RELATIONSHIP_UPSERT_BATCH = "hera_relationship_upsert_batch_v1"
RPC_RELATIONSHIP_QUERY = "hera_relationship_query_v1"
RPC_RELATIONSHIP_DELETE = "hera_relationship_delete_v1"
RPC_TXN_EMIT = "hera_txn_emit_v1"
RPC_TXN_EMIT_BATCH = "hera_txn_emit_batch_v1"
RPC_TXN_READ = "hera_txn_read_v1"
RPC_TXN_QUERY = "hera_txn_query_v1"
RPC_TXN_REVERSE = "hera_txn_reverse_v1"
RPC_ENTITIES_CRUD_V2 = "hera_entities_crud_v2"
RPC_TXN_CRUD = "hera_txn_crud_v1"

# Failures where the request never reached the database
TRANSIENT_EXCEPTIONS = (httpx.ConnectError, httpx.ConnectTimeout)

# SQLSTATE classes/codes that mean the caller sent bad input
CLIENT_ERROR_SQLSTATE_CLASSES = ("22", "23")
CLIENT_ERROR_SQLSTATES = ("P0001", "P0002")

_client: Client | None = None


# =============================================================================
# Client
# =============================================================================


def _build_supabase_http_client(settings: Settings) -> httpx.Client:
    """Return an httpx client configured for Supabase REST calls."""
    return httpx.Client(timeout=httpx.Timeout(settings.RPC_TIMEOUT_SECONDS))


def create_supabase_client(settings: Settings | None = None) -> Client:
    settings = settings or get_settings()
    options = ClientOptions()
    options.httpx_client = _build_supabase_http_client(settings)
    client = create_client(settings.supabase_url, settings.supabase_service_role_key, options=options)
    logger.info(
        "Initialized Supabase client for env='%s' (timeout=%ss)",
        settings.environment,
        settings.RPC_TIMEOUT_SECONDS,
    )
    return client


def get_supabase_client() -> Client:
    """Return the process-wide Supabase client, creating it on first use."""
    global _client
    if _client is None:
        _client = create_supabase_client()
    return _client


def reset_supabase_client() -> None:
    global _client
    _client = None


# =============================================================================
# Error mapping
# =============================================================================


def status_for_pg_code(code: str | None) -> int:
    """HTTP status for a Postgres/PostgREST error code."""
    if not code:
        return 500
    if code.startswith(CLIENT_ERROR_SQLSTATE_CLASSES) or code in CLIENT_ERROR_SQLSTATES:
        return 400
    # PostgREST request errors (bad params, unknown function signature)
    if code.startswith(("PGRST1", "PGRST2")):
        return 400
    return 500


def _rpc_error(name: str, exc: APIError) -> RpcError:
    message = exc.message or str(exc)
    return RpcError(
        message=message,
        rpc=name,
        status_code=status_for_pg_code(exc.code),
        pg_code=exc.code,
        hint=exc.hint,
    )


def _check_result(name: str, data: Any) -> Any:
    # Orchestrator RPCs wrap the inner function result: {success, data: {success, ...}}
    failed = data
    if isinstance(data, dict) and data.get("success") is not False:
        inner = data.get("data")
        failed = inner if isinstance(inner, dict) else None

    if isinstance(failed, dict) and failed.get("success") is False:
        error = failed.get("error") or failed.get("message") or f"{name} reported failure"
        exc = RpcError(
            message=str(error),
            rpc=name,
            status_code=400,
            pg_code=failed.get("error_code") or failed.get("code"),
        )
        if failed.get("violations"):
            exc.extra["violations"] = failed["violations"]
        raise exc
    return data


# =============================================================================
# Calls
# =============================================================================


def _execute(name: str, params: dict[str, Any]) -> Any:
    client = get_supabase_client()
    return client.rpc(name, params).execute().data


def call_rpc_sync(name: str, params: dict[str, Any]) -> Any:
    """
    Call a Postgres function and return its result.

    ``None`` parameters are dropped so the function's own defaults apply.

    Raises:
        RpcError: the function raised or reported failure
        UpstreamUnavailableError: the database could not be reached
    """
    settings = get_settings()
    clean = {k: v for k, v in params.items() if v is not None}

    @retry(
        retry=retry_if_exception_type(TRANSIENT_EXCEPTIONS),
        stop=stop_after_attempt(settings.RPC_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2.0),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def attempt() -> Any:
        return _execute(name, clean)

    with LogContext(rpc=name, organization_id=clean.get("p_organization_id")):
        with Timer() as t:
            try:
                data = attempt()
            except APIError as e:
                err = _rpc_error(name, e)
                logger.warning(
                    f"RPC {name} failed: {err.message}",
                    extra={"rpc": name, "error_code": err.pg_code, "duration_ms": round(t.elapsed_ms, 2)},
                )
                raise err from e
            except TRANSIENT_EXCEPTIONS as e:
                logger.error(
                    f"RPC {name} unreachable after {settings.RPC_MAX_ATTEMPTS} attempts: {e}",
                    extra={"rpc": name, "attempt": settings.RPC_MAX_ATTEMPTS},
                )
                raise UpstreamUnavailableError() from e

        logger.info(
            f"RPC {name} ok ({t.elapsed_ms:.1f}ms)",
            extra={"rpc": name, "duration_ms": round(t.elapsed_ms, 2)},
        )
    return _check_result(name, data)


async def call_rpc(name: str, params: dict[str, Any]) -> Any:
    """Async wrapper that runs the blocking Supabase call in the threadpool."""
    return await run_in_threadpool(call_rpc_sync, name, params)


async def ping() -> bool:
    """Cheap reachability check used by the readiness probe."""
    settings = get_settings()

    def _probe() -> bool:
        response = httpx.get(
            f"{settings.supabase_url.rstrip('/')}/rest/v1/",
            headers={"apikey": settings.supabase_service_role_key},
            timeout=5.0,
        )
        return response.status_code < 500

    try:
        return await run_in_threadpool(_probe)
    except httpx.HTTPError as e:
        logger.warning(f"Supabase readiness probe failed: {type(e).__name__}: {e}")
        return False
