"""HTTP plumbing for the school-operations REST backend.

Every backend endpoint answers with the same `{success, message, data}` envelope. This module owns
URL building, authentication headers, timeouts and envelope unwrapping so the step clients and the
one-shot collaborators only describe payloads.
"""

from __future__ import annotations

import logging
from typing import Any, Generic, TypeVar

import httpx
import msgspec

from approval_dispatcher.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackendError(Exception):
  """Raised when a backend call fails or returns an unsuccessful envelope."""

  def __init__(self, message: str, *, status_code: int | None = None) -> None:
    super().__init__(message)
    self.message = message
    self.status_code = status_code


class Envelope(msgspec.Struct, Generic[T]):
  """Response wrapper shared by every backend endpoint."""

  success: bool
  data: T | None = None
  message: str | None = None


class _ErrorBody(msgspec.Struct):
  message: str | None = None


def _extract_error_message(response: httpx.Response) -> str | None:
  """Pull the backend's error message out of a non-2xx response when it sent one."""
  try:
    body = msgspec.json.decode(response.content, type=_ErrorBody)
  except msgspec.DecodeError:
    return None
  return body.message


class BackendClient:
  """Thin async client for posting JSON payloads to the backend."""

  def __init__(self, *, base_url: str, token: str | None = None, timeout_seconds: float = 30.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
    self._base_url = base_url.rstrip("/")
    self._token = token
    self._timeout_seconds = timeout_seconds
    self._transport = transport

  @classmethod
  def from_settings(cls, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> BackendClient:
    return cls(base_url=settings.backend_base_url, token=settings.backend_token, timeout_seconds=settings.backend_timeout_seconds, transport=transport)

  def _build_client(self) -> httpx.AsyncClient:
    """Build an httpx client for a single backend call."""
    # Never trust environment proxy variables for backend calls.
    return httpx.AsyncClient(transport=self._transport, base_url=self._base_url, timeout=self._timeout_seconds, trust_env=False)

  def _headers(self) -> dict[str, str]:
    headers = {"content-type": "application/json", "accept": "application/json"}
    if self._token:
      headers["authorization"] = f"Bearer {self._token}"
    return headers

  async def post(self, path: str, payload: dict[str, Any] | None, *, data_type: type[T], error_message: str) -> T | None:
    """POST a payload and return the unwrapped envelope data.

    Raises `BackendError` for transport failures, non-2xx responses, undecodable bodies and
    envelopes reporting `success=false`. No retries are attempted.
    """
    body = msgspec.json.encode(payload or {})

    try:
      async with self._build_client() as client:
        response = await client.post(path, content=body, headers=self._headers())
        response.raise_for_status()

    except httpx.HTTPStatusError as exc:
      status_code = exc.response.status_code
      message = _extract_error_message(exc.response) or error_message
      logger.error("Backend call %s returned %s: %s", path, status_code, message)
      raise BackendError(message, status_code=status_code) from exc

    except httpx.RequestError as exc:
      logger.error("Backend call %s failed: %s", path, exc)
      raise BackendError(f"{error_message}: {exc}") from exc

    try:
      envelope = msgspec.json.decode(response.content, type=Envelope[data_type])
    except msgspec.DecodeError as exc:
      logger.error("Backend call %s returned an invalid payload: %s", path, exc)
      raise BackendError(f"{error_message}: invalid response payload ({exc})", status_code=response.status_code) from exc

    if not envelope.success:
      raise BackendError(envelope.message or error_message, status_code=response.status_code)

    return envelope.data
