import pytest

from chatrelay.app.config import GatewayConfig
from chatrelay.app.errors import ForbiddenPathError, RouteNotFoundError
from chatrelay.app.proxy import ProviderKind, ProviderRouter, normalize_base_url


@pytest.fixture
def router() -> ProviderRouter:
    return ProviderRouter(
        GatewayConfig(
            openai_url="api.openai.example/",
            google_url="https://gemini.example",
            google_search_url="https://search.example/customsearch/v1",
        )
    )


@pytest.mark.parametrize(
    "subpath",
    [
        "v1/chat/completions",
        "v1/audio/speech",
        "v1/images/generations",
        "v1/models",
        "dashboard/billing/usage",
        "dashboard/billing/subscription",
    ],
)
def test_openai_allowed_paths(router: ProviderRouter, subpath: str):
    route = router.resolve(f"/api/openai/{subpath}")
    assert route.provider == ProviderKind.OPENAI
    assert route.subpath == subpath
    assert route.upstream_url == f"https://api.openai.example/{subpath}"


@pytest.mark.parametrize(
    "subpath",
    [
        "v1/models",
        "v1beta/models",
        "v1beta/models/gemini-1.5-pro",
        "v1/models/gemini-pro:generateContent",
        "v1beta/models/gemini-pro:streamGenerateContent",
        "v1beta/models/gemini-pro:countTokens",
    ],
)
def test_gemini_allowed_paths(router: ProviderRouter, subpath: str):
    route = router.resolve(f"/api/google/{subpath}")
    assert route.provider == ProviderKind.GEMINI
    assert route.upstream_url == f"https://gemini.example/{subpath}"


@pytest.mark.parametrize(
    "path",
    [
        "/api/openai/v1/files",
        "/api/openai/v1/chat/completions/extra",
        "/api/openai/v1/../v1/models",
        "/api/google/v1beta/tunedModels",
        "/api/google/v1beta/models/gemini-pro:embedContent",
        "/api/google/v2/models",
        "/api/google/v1beta/models/..",
        "/api/google/v1/models/.",
        "/api/google/v1beta/models/./gemini-pro:generateContent",
    ],
)
def test_unlisted_paths_are_forbidden(router: ProviderRouter, path: str):
    with pytest.raises(ForbiddenPathError) as exc_info:
        router.resolve(path)
    assert exc_info.value.status_code == 403
    assert exc_info.value.message.startswith("you are not allowed to request ")


@pytest.mark.parametrize("path", ["/api/anthropic/v1/messages", "/api/openai", "/v1/models", ""])
def test_unknown_prefix_is_not_found(router: ProviderRouter, path: str):
    with pytest.raises(RouteNotFoundError):
        router.provider_for(path)


def test_search_takes_precedence_over_gemini_prefix(router: ProviderRouter):
    assert router.provider_for("/api/google/search") == ProviderKind.SEARCH
    route = router.resolve("/api/google/search/")
    assert route.provider == ProviderKind.SEARCH
    assert route.upstream_url == "https://search.example/customsearch/v1"


def test_trailing_slash_and_query_are_ignored(router: ProviderRouter):
    route = router.resolve("/api/openai/v1/chat/completions/?foo=bar")
    assert route.subpath == "v1/chat/completions"
    assert route.is_chat
    assert not route.is_model_list


def test_route_kinds(router: ProviderRouter):
    assert router.resolve("/api/openai/v1/models").is_model_list
    assert router.resolve("/api/google/v1beta/models").is_model_list
    assert router.resolve("/api/google/v1beta/models/g:streamGenerateContent").is_chat
    assert not router.resolve("/api/google/v1beta/models/g:countTokens").is_chat


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("api.openai.com", "https://api.openai.com"),
        ("https://api.openai.com/", "https://api.openai.com"),
        ("http://localhost:8080//", "http://localhost:8080"),
        ("  https://proxy.example/base/ ", "https://proxy.example/base"),
    ],
)
def test_normalize_base_url(raw: str, expected: str):
    assert normalize_base_url(raw) == expected
