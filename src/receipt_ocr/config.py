import os
from dataclasses import dataclass
from typing import Dict, Optional

from dotenv import dotenv_values

from .logging import get_logger

log = get_logger("config")

DEFAULT_OCR_LANG = "tur+eng"
DEFAULT_FUZZY_THRESHOLD = 0.2


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir.

    This makes running the CLI from subdirectories (e.g., `src/`) still find
    the repository-level `.env`.
    """
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: str) -> Dict[str, str]:
    """Read the nearest .env without mutating os.environ."""
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return {}
    env = {k: v.strip() for k, v in dotenv_values(path).items() if v is not None}
    log.debug(f"Loaded {len(env)} key(s) from .env at {path}")
    return env


def _lookup(env: Dict[str, str], key: str) -> Optional[str]:
    v = os.environ.get(key)
    if v is None:
        v = env.get(key)
    if v is None:
        return None
    v = v.strip()
    return v or None


def _as_float(env: Dict[str, str], key: str, default: float) -> float:
    raw = _lookup(env, key)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning(f"{key}={raw!r} is not a number; using default {default}")
        return default


def _as_int(env: Dict[str, str], key: str, default: int) -> int:
    raw = _lookup(env, key)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        log.warning(f"{key}={raw!r} is not an integer; using default {default}")
        return default
    if value < 1:
        log.warning(f"{key}={value} must be >= 1; using default {default}")
        return default
    return value


def _as_bool(env: Dict[str, str], key: str, default: bool) -> bool:
    raw = _lookup(env, key)
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    log.warning(f"{key}={raw!r} is not a boolean; using default {default}")
    return default


@dataclass(frozen=True)
class PipelineSettings:
    ocr_lang: str = DEFAULT_OCR_LANG
    fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD
    tesseract_cmd: Optional[str] = None
    llm_backend: str = "openai"
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4.1-mini"
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "qwen2.5:7b"
    aws_region: str = "eu-central-1"
    cloud_ocr_timeout: int = 60
    llm_timeout: int = 120
    max_workers: int = 4
    max_escalations: int = 2
    fail_on_escalation_error: bool = True


def load_settings(dotenv_dir: str) -> PipelineSettings:
    """Build settings from the environment, falling back to the nearest .env."""
    env = _read_dotenv(dotenv_dir)
    defaults = PipelineSettings()

    backend = (_lookup(env, "LLM_BACKEND") or defaults.llm_backend).lower()
    if backend not in {"openai", "ollama"}:
        log.warning(f"Unknown LLM_BACKEND={backend!r}; defaulting to 'openai'")
        backend = "openai"

    settings = PipelineSettings(
        ocr_lang=_lookup(env, "OCR_LANG") or defaults.ocr_lang,
        fuzzy_threshold=_as_float(env, "THRESHOLD", defaults.fuzzy_threshold),
        tesseract_cmd=_lookup(env, "TESSERACT_CMD"),
        llm_backend=backend,
        openai_api_key=_lookup(env, "OPENAI_API_KEY") or _lookup(env, "openai_api_key"),
        openai_model=_lookup(env, "OPENAI_MODEL") or defaults.openai_model,
        ollama_url=_lookup(env, "OLLAMA_URL") or defaults.ollama_url,
        ollama_model=_lookup(env, "OLLAMA_MODEL") or defaults.ollama_model,
        aws_region=_lookup(env, "AWS_REGION") or defaults.aws_region,
        cloud_ocr_timeout=_as_int(env, "CLOUD_OCR_TIMEOUT", defaults.cloud_ocr_timeout),
        llm_timeout=_as_int(env, "LLM_TIMEOUT", defaults.llm_timeout),
        max_workers=_as_int(env, "MAX_WORKERS", defaults.max_workers),
        max_escalations=_as_int(env, "MAX_ESCALATIONS", defaults.max_escalations),
        fail_on_escalation_error=_as_bool(env, "FAIL_ON_ESCALATION_ERROR", defaults.fail_on_escalation_error),
    )
    log.debug(
        "Settings: lang=%s threshold=%s backend=%s region=%s workers=%s escalations=%s",
        settings.ocr_lang,
        settings.fuzzy_threshold,
        settings.llm_backend,
        settings.aws_region,
        settings.max_workers,
        settings.max_escalations,
    )
    return settings
