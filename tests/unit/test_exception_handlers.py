"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

import json

import pytest
from starlette.requests import Request

from approval_dispatcher.core.exceptions import _error_payload, _sanitize_validation_errors, backend_exception_handler, run_conflict_exception_handler
from approval_dispatcher.dispatch.errors import InvalidTransitionError, RunConflictError
from approval_dispatcher.services.backend import BackendError


def _request(request_id: str | None = "req-1") -> Request:
  state = {"request_id": request_id} if request_id else {}
  return Request({"type": "http", "method": "POST", "path": "/v1/runs/session-approvals", "headers": [], "query_string": b"", "state": state})


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Ensure validation errors stay JSON-serializable and redact raw request payloads."""
  errors = [{"type": "value_error", "loc": ("body", "session_id"), "msg": "Value error, session_id must be positive.", "input": {"session_id": -4}, "ctx": {"error": ValueError("session_id must be positive."), "input": {"session_id": -4}}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["loc"] == ["body", "session_id"]
  assert sanitized[0]["ctx"]["error"] == "ValueError: session_id must be positive."
  assert "input" not in sanitized[0]["ctx"]


def test_error_payload_only_adds_request_id_when_known() -> None:
  assert _error_payload("boom") == {"detail": "boom"}
  assert _error_payload("boom", request_id="abc") == {"detail": "boom", "requestId": "abc"}


@pytest.mark.anyio
async def test_run_conflict_includes_the_active_run_id() -> None:
  response = await run_conflict_exception_handler(_request(), RunConflictError("session_approval:3:2025-04-01", "run-9"))

  assert response.status_code == 409
  body = json.loads(response.body)
  assert body["detail"]["run_id"] == "run-9"
  assert body["requestId"] == "req-1"


@pytest.mark.anyio
async def test_invalid_transition_maps_to_conflict_without_run_id() -> None:
  response = await run_conflict_exception_handler(_request(None), InvalidTransitionError("Run cannot start while running."))

  assert response.status_code == 409
  body = json.loads(response.body)
  assert body == {"detail": {"message": "Run cannot start while running."}}


@pytest.mark.anyio
async def test_backend_failure_maps_to_bad_gateway() -> None:
  response = await backend_exception_handler(_request(), BackendError("Session not found", status_code=404))

  assert response.status_code == 502
  assert json.loads(response.body)["detail"] == "Session not found"
