from src.config.loader import get_bool_env, get_float_env, get_int_env, get_str_env


def test_get_str_env(monkeypatch):
    monkeypatch.setenv("RELAY_TEST_STR", "  value  ")
    assert get_str_env("RELAY_TEST_STR") == "value"
    monkeypatch.delenv("RELAY_TEST_STR")
    assert get_str_env("RELAY_TEST_STR", "fallback") == "fallback"


def test_get_bool_env(monkeypatch):
    for raw in ("1", "true", "Yes", "on"):
        monkeypatch.setenv("RELAY_TEST_BOOL", raw)
        assert get_bool_env("RELAY_TEST_BOOL") is True
    monkeypatch.setenv("RELAY_TEST_BOOL", "off")
    assert get_bool_env("RELAY_TEST_BOOL", True) is False
    monkeypatch.delenv("RELAY_TEST_BOOL")
    assert get_bool_env("RELAY_TEST_BOOL", True) is True


def test_get_int_env_falls_back_on_garbage(monkeypatch):
    monkeypatch.setenv("RELAY_TEST_INT", "42")
    assert get_int_env("RELAY_TEST_INT") == 42
    monkeypatch.setenv("RELAY_TEST_INT", "forty-two")
    assert get_int_env("RELAY_TEST_INT", 7) == 7


def test_get_float_env(monkeypatch):
    monkeypatch.setenv("RELAY_TEST_FLOAT", "0.25")
    assert get_float_env("RELAY_TEST_FLOAT") == 0.25
    monkeypatch.setenv("RELAY_TEST_FLOAT", "warm")
    assert get_float_env("RELAY_TEST_FLOAT", 0.7) == 0.7
