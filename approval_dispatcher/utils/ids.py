"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_run_id() -> str:
  """Return a new run identifier."""
  return str(uuid.uuid4())
