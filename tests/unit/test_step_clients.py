from __future__ import annotations

import datetime as dt
import json

import httpx
import pytest

from approval_dispatcher.dispatch.errors import StepError
from approval_dispatcher.dispatch.models import AbsenceResendTarget, Cursor, SessionApprovalTarget
from approval_dispatcher.dispatch.step_client import AbsenceResendStepClient, SessionApprovalStepClient
from approval_dispatcher.services.backend import BackendClient

SESSION = SessionApprovalTarget(session_id=42, date=dt.date(2025, 3, 4))
ABSENCE = AbsenceResendTarget(date=dt.date(2025, 3, 4), skip_sent=False)


def _backend(handler, token: str | None = "secret-token") -> BackendClient:
  return BackendClient(base_url="http://backend.test/api/", token=token, timeout_seconds=5.0, transport=httpx.MockTransport(handler))


def _approve_data(**overrides):
  data = {"records_approved": 20, "messages_sent": 18, "total_messages_sent": 38, "messages_skipped": 2, "next_offset": 40, "has_more": True, "needs_break": False, "remaining_count": 15, "batch_size": 20}
  data.update(overrides)
  return data


@pytest.mark.anyio
async def test_session_step_posts_cursor_and_maps_cumulative_sends() -> None:
  seen: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(request)
    return httpx.Response(200, json={"success": True, "message": "ok", "data": _approve_data()})

  client = SessionApprovalStepClient(_backend(handler))
  result = await client.execute_step(SESSION, Cursor(offset=20, cumulative_sent=20))

  request = seen[0]
  assert request.method == "POST"
  assert request.url.path == "/api/admin/attendance-reports/approve-session"
  assert request.headers["authorization"] == "Bearer secret-token"
  assert json.loads(request.content) == {"session_id": 42, "date": "2025-03-04", "offset": 20, "total_sent": 20}

  assert result.records_approved == 20
  assert result.messages_sent == 38
  assert result.messages_skipped == 2
  assert result.next_cursor == Cursor(offset=40, cumulative_sent=38)
  assert result.has_more is True
  assert result.needs_break is False


@pytest.mark.anyio
async def test_session_step_without_token_sends_no_authorization() -> None:
  seen: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(request)
    return httpx.Response(200, json={"success": True, "data": _approve_data(has_more=False)})

  await SessionApprovalStepClient(_backend(handler, token=None)).execute_step(SESSION, Cursor.zero())

  assert "authorization" not in seen[0].headers


@pytest.mark.anyio
async def test_unsuccessful_envelope_becomes_step_error() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"success": False, "message": "Session already approved"})

  with pytest.raises(StepError) as excinfo:
    await SessionApprovalStepClient(_backend(handler)).execute_step(SESSION, Cursor.zero())

  assert excinfo.value.reason == "Session already approved"


@pytest.mark.anyio
async def test_http_error_carries_backend_message_and_status() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(503, json={"success": False, "message": "Messaging gateway unavailable"})

  with pytest.raises(StepError) as excinfo:
    await SessionApprovalStepClient(_backend(handler)).execute_step(SESSION, Cursor.zero())

  assert excinfo.value.reason == "Messaging gateway unavailable"
  assert excinfo.value.status_code == 503


@pytest.mark.anyio
async def test_http_error_without_json_body_uses_fallback_message() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(500, text="Internal Server Error")

  with pytest.raises(StepError) as excinfo:
    await SessionApprovalStepClient(_backend(handler)).execute_step(SESSION, Cursor.zero())

  assert excinfo.value.reason == "Failed to approve attendance session"
  assert excinfo.value.status_code == 500


@pytest.mark.anyio
async def test_transport_failure_becomes_step_error() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)

  with pytest.raises(StepError) as excinfo:
    await SessionApprovalStepClient(_backend(handler)).execute_step(SESSION, Cursor.zero())

  assert "connection refused" in excinfo.value.reason
  assert excinfo.value.status_code is None


@pytest.mark.anyio
async def test_malformed_payload_becomes_step_error() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "data": {"records_approved": "twenty"}})

  with pytest.raises(StepError) as excinfo:
    await SessionApprovalStepClient(_backend(handler)).execute_step(SESSION, Cursor.zero())

  assert "invalid response payload" in excinfo.value.reason


@pytest.mark.anyio
async def test_missing_data_becomes_step_error() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"success": True, "data": None})

  with pytest.raises(StepError):
    await SessionApprovalStepClient(_backend(handler)).execute_step(SESSION, Cursor.zero())


@pytest.mark.anyio
async def test_wrong_target_type_is_a_programming_error() -> None:
  def handler(request: httpx.Request) -> httpx.Response:
    raise AssertionError("no request expected")

  with pytest.raises(TypeError):
    await SessionApprovalStepClient(_backend(handler)).execute_step(ABSENCE, Cursor.zero())
  with pytest.raises(TypeError):
    await AbsenceResendStepClient(_backend(handler)).execute_step(SESSION, Cursor.zero())


@pytest.mark.anyio
async def test_absence_step_accumulates_sends_on_the_cursor() -> None:
  seen: list[httpx.Request] = []

  def handler(request: httpx.Request) -> httpx.Response:
    seen.append(request)
    data = {"messages_sent": 8, "messages_skipped": 1, "messages_failed": 1, "total_absent": 30, "next_offset": 20, "has_more": True, "needs_break": True, "remaining_count": 10, "batch_size": 10}
    return httpx.Response(200, json={"success": True, "data": data})

  client = AbsenceResendStepClient(_backend(handler))
  result = await client.execute_step(ABSENCE, Cursor(offset=10, cumulative_sent=9))

  assert seen[0].url.path == "/api/admin/attendance-reports/resend-absence-messages"
  assert json.loads(seen[0].content) == {"date": "2025-03-04", "skip_sent": False, "offset": 10}

  assert result.records_approved == 10
  assert result.messages_sent == 17
  assert result.messages_skipped == 2
  assert result.next_cursor == Cursor(offset=20, cumulative_sent=17)
  assert result.needs_break is True
