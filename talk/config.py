"""Agent settings, read once at import.

Other modules import these constants instead of reading os.environ.

Values come from a plain .env file at secrets/agent.env (override the path
with TALK_ENV_FILE), and process environment variables win over the file.
A missing file means defaults.
"""

import math
import os
from pathlib import Path

from dotenv import dotenv_values

PROJECT_ROOT = Path(__file__).resolve().parent.parent

MIN_CONFIDENCE_THRESHOLD = 0.1
MAX_CONFIDENCE_THRESHOLD = 0.95


def load_env_file(dotenv_path: str | Path) -> dict[str, str | None]:
    """Load a plain .env file, or nothing if it does not exist."""
    path = Path(dotenv_path)
    if not path.exists():
        return {}
    return dict(dotenv_values(path))


def clamp_threshold(value: float) -> float:
    """Keep the confidence threshold inside the range the agent supports."""
    return min(max(value, MIN_CONFIDENCE_THRESHOLD), MAX_CONFIDENCE_THRESHOLD)


def _parse_float(raw: str | None, default: float) -> float:
    if raw in (None, ""):
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if math.isfinite(value) else default


def _parse_bool(raw: str | None, default: bool) -> bool:
    if raw in (None, ""):
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


_ENV_FILE = os.environ.get("TALK_ENV_FILE", str(PROJECT_ROOT / "secrets" / "agent.env"))
_values = {**load_env_file(_ENV_FILE), **os.environ}


def _get(key: str, default: str = "") -> str:
    value = _values.get(key)
    return default if value is None else value


# --- LLM (Ollama) ---
LLM_ENABLED: bool = _parse_bool(_get("LLM_ENABLED"), True)
OLLAMA_BASE_URL: str = _get("OLLAMA_BASE_URL", "http://localhost:11434")
OLLAMA_MODEL: str = _get("OLLAMA_MODEL")
OLLAMA_KEEP_ALIVE: str = _get("OLLAMA_KEEP_ALIVE", "5m")
OLLAMA_TIMEOUT: float = _parse_float(_get("OLLAMA_TIMEOUT"), 60.0)

# --- Decision making ---
CONFIDENCE_THRESHOLD: float = clamp_threshold(_parse_float(_get("CONFIDENCE_THRESHOLD"), 0.7))
ENABLE_WORKFLOWS: bool = _parse_bool(_get("ENABLE_WORKFLOWS"), False)

# --- Handlers ---
SEARCH_URL_TEMPLATE: str = _get("SEARCH_URL_TEMPLATE", "https://www.google.com/search?q={query}")

# --- Pipeline ---
COMPLETE_RESET_DELAY: float = _parse_float(_get("COMPLETE_RESET_DELAY"), 2.0)
RUN_LOG_PATH: str = _get("RUN_LOG_PATH", str(PROJECT_ROOT / "data" / "agent_runs.jsonl"))
