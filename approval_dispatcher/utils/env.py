"""Load `DISPATCH_*` settings from a local .env file."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

logger = logging.getLogger(__name__)

ENV_PREFIX = "DISPATCH_"

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def default_env_path() -> Path:
  """Return the .env path at the project root."""
  return Path(__file__).resolve().parents[2] / ".env"


def _strip_inline_comment(*, value: str) -> str:
  # `#` starts a comment only after whitespace.
  match = re.search(r"\s#", value)
  if not match:
    return value.strip()
  return value[: match.start()].rstrip()


def parse_env_line(*, raw: str, lineno: int, path: Path) -> tuple[str, str] | None:
  """Parse one .env line into (key, value); blank lines and comments yield None.

  Malformed lines raise ValueError naming the file and line.
  """
  line = raw.strip()
  if not line or line.startswith("#"):
    return None

  if line.startswith("export "):
    line = line[len("export ") :].lstrip()

  if "=" not in line:
    raise ValueError(f"{path}:{lineno}: expected KEY=VALUE: {raw.rstrip()}")

  key, value = line.split("=", 1)
  key = key.strip()
  if not _ENV_KEY_RE.fullmatch(key):
    raise ValueError(f"{path}:{lineno}: invalid key {key!r}")

  value = value.strip()
  if value[:1] in {'"', "'"}:
    if len(value) < 2 or value[-1] != value[0]:
      raise ValueError(f"{path}:{lineno}: unterminated quoted value for {key}")
    return key, value[1:-1]

  return key, _strip_inline_comment(value=value)


def load_env_file(path: Path, *, override: bool = False) -> list[str]:
  """Export the file's `DISPATCH_*` keys into the environment and return the keys applied.

  Keys for other tools sharing the same .env are ignored. Existing environment values
  win unless `override` is set.
  """
  if not path.is_file():
    return []

  applied: list[str] = []
  ignored = 0
  for lineno, raw in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
    parsed = parse_env_line(raw=raw, lineno=lineno, path=path)
    if parsed is None:
      continue

    key, value = parsed
    if not key.startswith(ENV_PREFIX):
      ignored += 1
      continue
    if not override and key in os.environ:
      continue

    os.environ[key] = value
    applied.append(key)

  logger.debug("Loaded %s setting(s) from %s (%s unrelated key(s) ignored)", len(applied), path, ignored)
  return applied
