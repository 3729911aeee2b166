import pytest

from config import REQUIRED_VARS, load_settings, parse_bad_ranges
from errors import FatalConfigError


@pytest.fixture
def env(monkeypatch):
    values = {
        "VERIAL_API_URL": "http://erp.local:8000/WcfServiceLibraryVerial/",
        "VERIAL_SESSION": '"18"',
        "WC_BASE_URL": "https://tienda.example.com/",
        "WC_CONSUMER_KEY": "ck_123",
        "WC_CONSUMER_SECRET": "cs_456",
    }
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    for key in ("VERIAL_SYNC_BAD_RANGES", "VERIAL_SYNC_BATCH_SIZE_PRODUCTS", "WC_DEFAULT_CATEGORY_ID",
                "VERIAL_SYNC_RUN_TIMEOUT"):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_load_settings(env):
    env.setenv("VERIAL_SYNC_BAD_RANGES", "3201-3210, 4810-4801")
    env.setenv("VERIAL_SYNC_BATCH_SIZE_PRODUCTS", "50")
    settings = load_settings(env_file=None)
    assert settings.verial_api_url == "http://erp.local:8000/WcfServiceLibraryVerial"
    assert settings.verial_session == "18"
    assert settings.bad_ranges == [(3201, 3210), (4801, 4810)]
    assert settings.batch_sizes == {"products": 50}
    assert settings.default_category_id == 15
    assert settings.max_retries == 3
    assert settings.run_timeout == 3600


def test_missing_required_vars_are_listed(env):
    env.delenv("WC_CONSUMER_KEY")
    env.delenv("VERIAL_SESSION")
    with pytest.raises(FatalConfigError) as exc:
        load_settings(env_file=None)
    assert set(exc.value.context["missing"]) == {"WC_CONSUMER_KEY", "VERIAL_SESSION"}
    assert set(exc.value.context["missing"]) <= set(REQUIRED_VARS)


def test_invalid_bad_range():
    with pytest.raises(FatalConfigError):
        parse_bad_ranges("3201-abc")
    assert parse_bad_ranges("") == []
