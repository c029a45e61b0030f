"""Central configuration constants for Decision Coach."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Final

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for 3.10
    import tomli as tomllib

PROJECT_ROOT: Final[Path] = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = Path(os.environ.get("COACH_CONFIG_FILE", PROJECT_ROOT / "coach.toml"))


def _load_config_data() -> Dict[str, Any]:
    if DEFAULT_CONFIG_PATH.exists():
        with DEFAULT_CONFIG_PATH.open("rb") as fh:
            return tomllib.load(fh)
    return {}


_CONFIG_DATA = _load_config_data()


def _get_setting(section: str, name: str, default: Any) -> str:
    """Resolve a setting from env (COACH_<SECTION>_<NAME>), then TOML, then default."""

    env_key = f"COACH_{section.upper()}_{name.upper()}" if section != "data" else f"COACH_{name.upper()}"
    if env_key in os.environ:
        return os.environ[env_key]
    data_section = _CONFIG_DATA.get(section, {})
    return str(data_section.get(name, default))


def _get_llm_setting(name: str, default: Any) -> str:
    return _get_setting("llm", name, default)


def _get_chat_setting(name: str, default: Any) -> str:
    return _get_setting("chat", name, default)


def _get_context_setting(name: str, default: Any) -> str:
    return _get_setting("context", name, default)


def _get_vector_store_setting(name: str, default: Any) -> str:
    return _get_setting("vector_store", name, default)


DATA_ROOT = Path(_get_setting("data", "root", Path.home() / ".decision_coach")).expanduser()
STATE_DIR = Path(_get_setting("data", "state_dir", DATA_ROOT / "state"))
VECTOR_DB_PATH = Path(_get_vector_store_setting("path", DATA_ROOT / "vectordb"))
SQLITE_PATH = Path(os.environ.get("COACH_SQLITE_PATH", STATE_DIR / "decision_coach.sqlite3"))

DEFAULT_EMBED_MODEL = os.environ.get("COACH_EMBED_MODEL", "sentence-transformers/all-MiniLM-L6-v2")
DEFAULT_OLLAMA_URL = _get_llm_setting("base_url", "http://localhost:11434")
DEFAULT_OLLAMA_MODEL = _get_llm_setting("model", "gemma3:1b")


@dataclass(frozen=True)
class LLMConfig:
    """Settings for the local Ollama backend."""

    base_url: str = DEFAULT_OLLAMA_URL
    model: str = DEFAULT_OLLAMA_MODEL
    temperature: float = float(_get_llm_setting("temperature", 0.7))
    top_p: float = float(_get_llm_setting("top_p", 0.9))
    request_timeout: int = int(_get_llm_setting("timeout", 180))
    health_timeout: float = float(_get_llm_setting("health_timeout", 2.0))


@dataclass(frozen=True)
class ChatConfig:
    """Timing and size knobs for chat sessions."""

    title_max_chars: int = int(_get_chat_setting("title_max_chars", 50))
    session_list_limit: int = int(_get_chat_setting("session_list_limit", 50))
    refresh_debounce_seconds: float = float(_get_chat_setting("refresh_debounce_seconds", 0.3))
    auto_submit_delay_seconds: float = float(_get_chat_setting("auto_submit_delay_seconds", 0.15))
    tool_followup_delay_seconds: float = float(_get_chat_setting("tool_followup_delay_seconds", 0.5))


@dataclass(frozen=True)
class ContextConfig:
    """Retrieval and prompt-size parameters used when assembling context."""

    similar_k: int = int(_get_context_setting("similar_k", 5))
    similarity_threshold: float = float(_get_context_setting("similarity_threshold", 0.6))
    recency_fallback_n: int = int(_get_context_setting("recency_fallback_n", 5))
    situation_chars: int = int(_get_context_setting("situation_chars", 300))
    outcome_chars: int = int(_get_context_setting("outcome_chars", 200))
    lessons_chars: int = int(_get_context_setting("lessons_chars", 150))
    few_shot_count: int = int(_get_context_setting("few_shot_count", 2))
    recency_boost_weight: float = float(_get_context_setting("recency_boost_weight", 0.1))


@dataclass(frozen=True)
class Paths:
    """Filesystem paths used throughout the project."""

    project_root: Path = PROJECT_ROOT
    data_root: Path = DATA_ROOT
    state_dir: Path = STATE_DIR
    vector_db_path: Path = VECTOR_DB_PATH
    sqlite_path: Path = SQLITE_PATH
    config_file: Path = DEFAULT_CONFIG_PATH


@dataclass(frozen=True)
class VectorStoreConfig:
    """Vector store backend settings."""

    backend: str = _get_vector_store_setting("backend", "chroma")
    path: Path = VECTOR_DB_PATH
    collection: str = _get_vector_store_setting("collection", "decision_entries")


@dataclass(frozen=True)
class AppConfig:
    """Aggregate configuration for the Decision Coach runtime."""

    paths: Paths = Paths()
    llm: LLMConfig = LLMConfig()
    chat: ChatConfig = ChatConfig()
    context: ContextConfig = ContextConfig()
    embed_model: str = DEFAULT_EMBED_MODEL
    vector_store: VectorStoreConfig = VectorStoreConfig()


CONFIG: Final[AppConfig] = AppConfig()

# Ensure important directories exist at import time.
for required_path in [
    CONFIG.paths.data_root,
    CONFIG.paths.state_dir,
]:
    required_path.mkdir(parents=True, exist_ok=True)
