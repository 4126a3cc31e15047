import pytest

from chatrelay.app.config import (
    DEFAULT_PROXY_TIMEOUT_SECS,
    GatewayConfig,
    get_proxy_timeout_secs,
    load_config,
)


def test_defaults_from_empty_environment():
    config = load_config({})
    assert config == GatewayConfig()
    assert config.proxy_timeout_secs == 600.0
    assert config.enable_stream_links is True
    assert config.disable_restricted_models is False
    assert config.openai_url == "https://api.openai.com"


def test_values_are_read_and_trimmed():
    config = load_config({
        "OPENAI_API_KEY": " sk-server ",
        "BASE_URL": "proxy.example",
        "GOOGLE_API_KEY": "g-server",
        "GOOGLE_SEARCH_ENGINE_ID": "cx-1",
        "CHATRELAY_ENABLE_SEARCH_TOOL": "yes",
        "CHATRELAY_ENABLE_CITATION_PROMPT": "ON",
        "CHATRELAY_ENABLE_STREAM_LINKS": "0",
        "CHATRELAY_LOG_LEVEL": "debug",
        "CHATRELAY_PORT": "9001",
    })
    assert config.openai_api_key == "sk-server"
    assert config.openai_url == "proxy.example"
    assert config.google_search_engine_id == "cx-1"
    assert config.enable_search_tool is True
    assert config.enable_citation_prompt is True
    assert config.enable_stream_links is False
    assert config.log_level == "DEBUG"
    assert config.port == 9001


@pytest.mark.parametrize(
    "environ",
    [{"DISABLE_RESTRICTED_MODELS": "true"}, {"DISABLE_GPT4": "1"}],
)
def test_restricted_model_flag_and_alias(environ):
    assert load_config(environ).disable_restricted_models is True


@pytest.mark.parametrize("raw", ["abc", "0", "-5", ""])
def test_bad_timeout_falls_back_to_default(raw: str):
    assert get_proxy_timeout_secs({"CHATRELAY_PROXY_TIMEOUT_SECS": raw}) == DEFAULT_PROXY_TIMEOUT_SECS


def test_timeout_override():
    assert get_proxy_timeout_secs({"CHATRELAY_PROXY_TIMEOUT_SECS": "2.5"}) == 2.5


@pytest.mark.parametrize("raw", ["http", "0", "70000"])
def test_bad_port_falls_back_to_default(raw: str):
    assert load_config({"CHATRELAY_PORT": raw}).port == 8000


def test_public_view_redacts_keys():
    view = load_config({"OPENAI_API_KEY": "sk-secret", "GOOGLE_URL": "g.example"}).as_public_dict()
    assert view == {
        "openaiApiKey": True,
        "googleApiKey": False,
        "googleUrl": "g.example",
        "googleSearchEngineId": "",
        "disableRestrictedModels": False,
    }
    assert "sk-secret" not in repr(view)
