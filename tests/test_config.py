import os
import sys

import pytest

sys.path.insert(0, os.path.abspath("src"))

from receipt_ocr.config import DEFAULT_FUZZY_THRESHOLD, PipelineSettings, load_settings

ENV_KEYS = (
    "THRESHOLD",
    "LLM_BACKEND",
    "OPENAI_API_KEY",
    "openai_api_key",
    "OPENAI_MODEL",
    "OLLAMA_URL",
    "OLLAMA_MODEL",
    "AWS_REGION",
    "CLOUD_OCR_TIMEOUT",
    "LLM_TIMEOUT",
    "MAX_WORKERS",
    "MAX_ESCALATIONS",
    "FAIL_ON_ESCALATION_ERROR",
    "OCR_LANG",
    "TESSERACT_CMD",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_without_env_file(tmp_path):
    settings = load_settings(str(tmp_path))
    assert settings == PipelineSettings()
    assert settings.fuzzy_threshold == DEFAULT_FUZZY_THRESHOLD
    assert settings.ocr_lang == "tur+eng"


def test_env_file_is_found_from_subdirectory(tmp_path):
    (tmp_path / ".env").write_text(
        "THRESHOLD=0.25\nLLM_BACKEND=Ollama\nOLLAMA_MODEL=llama3\nMAX_WORKERS=8\n"
        "FAIL_ON_ESCALATION_ERROR=no\n",
        encoding="utf-8",
    )
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)

    settings = load_settings(str(nested))

    assert settings.fuzzy_threshold == 0.25
    assert settings.llm_backend == "ollama"
    assert settings.ollama_model == "llama3"
    assert settings.max_workers == 8
    assert settings.fail_on_escalation_error is False


def test_process_env_wins_over_env_file(tmp_path, monkeypatch):
    (tmp_path / ".env").write_text("OPENAI_API_KEY=from-file\nAWS_REGION=us-east-1\n", encoding="utf-8")
    monkeypatch.setenv("OPENAI_API_KEY", "from-env")

    settings = load_settings(str(tmp_path))

    assert settings.openai_api_key == "from-env"
    assert settings.aws_region == "us-east-1"


def test_invalid_values_fall_back_to_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("THRESHOLD", "abc")
    monkeypatch.setenv("MAX_ESCALATIONS", "0")
    monkeypatch.setenv("LLM_TIMEOUT", "soon")
    monkeypatch.setenv("LLM_BACKEND", "gemini")
    monkeypatch.setenv("FAIL_ON_ESCALATION_ERROR", "maybe")

    settings = load_settings(str(tmp_path))

    defaults = PipelineSettings()
    assert settings.fuzzy_threshold == defaults.fuzzy_threshold
    assert settings.max_escalations == defaults.max_escalations
    assert settings.llm_timeout == defaults.llm_timeout
    assert settings.llm_backend == "openai"
    assert settings.fail_on_escalation_error is True


def test_blank_values_count_as_unset(tmp_path, monkeypatch):
    monkeypatch.setenv("OCR_LANG", "   ")
    monkeypatch.setenv("TESSERACT_CMD", "")
    settings = load_settings(str(tmp_path))
    assert settings.ocr_lang == "tur+eng"
    assert settings.tesseract_cmd is None
