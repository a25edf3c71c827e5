import pytest
from pydantic import ValidationError

from intake_ai.config import Settings
from intake_ai.config.target_schemas import TARGET_SCHEMAS, get_target_schema
from intake_ai.core.exceptions import ConfigurationError


def test_defaults():
    settings = Settings(_env_file=None)

    assert settings.mapping_acceptance_threshold == 60
    assert settings.ambiguity_threshold == 80
    assert settings.classification_max_chars == 2000
    assert settings.reasoning_excerpt_chars == 1500
    assert settings.cost_per_service_call == 5
    assert settings.llm_max_retries == 1


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("AMBIGUITY_THRESHOLD", "70")
    monkeypatch.setenv("LLM_PROVIDER", "gemini")

    settings = Settings(_env_file=None)

    assert settings.ambiguity_threshold == 70
    assert settings.llm_provider == "gemini"


@pytest.mark.parametrize("field, value", [
    ("mapping_acceptance_threshold", 101),
    ("ambiguity_threshold", -1),
    ("service_timeout_seconds", 0),
])
def test_invalid_values_rejected(field, value):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


def test_builtin_schemas():
    assert set(TARGET_SCHEMAS) == {"patient_intake", "referral"}
    assert set(get_target_schema("patient_intake").required_fields) == {"firstName", "lastName", "dateOfBirth"}


def test_unknown_schema():
    with pytest.raises(ConfigurationError, match="Unknown target schema"):
        get_target_schema("dental_claim")
