import pytest

TEST_SIGNING_KEY = "test-signing-key"


@pytest.fixture(autouse=True)
def _signing_key(monkeypatch: pytest.MonkeyPatch):  # pyright: ignore[reportUnusedFunction]
    monkeypatch.setenv("DELTAUI_SIGNING_KEY", TEST_SIGNING_KEY)
    for var in (
        "DELTAUI_VERIFY_STATE",
        "DELTAUI_LENIENT_FORMS",
        "DELTAUI_DEBUG",
        "DELTAUI_MINIFY_PATCHES",
        "DELTAUI_ROUTE_PREFIX",
    ):
        monkeypatch.delenv(var, raising=False)
    yield
