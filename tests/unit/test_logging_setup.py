from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

from approval_dispatcher.config import Settings
from approval_dispatcher.core.logging import TruncatedFormatter, _backup_namer, _build_handlers


def _settings(log_dir: Path) -> Settings:
  return Settings(
    environment="test",
    debug=False,
    backend_base_url="http://backend.test/api",
    backend_token=None,
    backend_timeout_seconds=5.0,
    allowed_origins=("http://localhost",),
    log_dir=str(log_dir),
    log_max_bytes=1024,
    log_backup_count=3,
    log_http_4xx=False,
  )


def test_backup_namer_uses_dash_suffix() -> None:
  assert _backup_namer("/var/log/dispatcher_20250101_000000.log.2") == "/var/log/dispatcher_20250101_000000.log-2"
  assert _backup_namer("/var/log/dispatcher.log") == "/var/log/dispatcher.log"


def test_build_handlers_creates_rotating_file(tmp_path: Path) -> None:
  stream, file_handler, log_path = _build_handlers(_settings(tmp_path / "nested"))
  try:
    assert log_path.exists()
    assert log_path.parent == (tmp_path / "nested").resolve()
    assert log_path.name.startswith("dispatcher_")
    assert isinstance(file_handler, logging.handlers.RotatingFileHandler)
    assert file_handler.maxBytes == 1024
    assert file_handler.backupCount == 3
    assert isinstance(stream.formatter, TruncatedFormatter)
  finally:
    file_handler.close()
    stream.close()


def test_truncated_formatter_keeps_head_and_tail() -> None:
  def recurse(depth: int) -> None:
    if depth == 0:
      raise RuntimeError("deep failure")
    recurse(depth - 1)

  try:
    recurse(10)
  except RuntimeError:
    exc_info = sys.exc_info()

  rendered = TruncatedFormatter().formatException(exc_info)

  assert rendered.startswith("Traceback (most recent call last):")
  assert "    ...\n" in rendered
  assert rendered.rstrip().endswith("RuntimeError: deep failure")
