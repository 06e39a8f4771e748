import pytest

from boxref.boxref_config import CONFIG_ENV, RuntimeConfig, load_config
from boxref.boxref_errors import BoxValidationError
from boxref.boxref_interop import InteropService


def test_defaults_without_path(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV, raising=False)
    config = load_config()
    assert config == RuntimeConfig()
    assert config.handles_cache_enabled is True
    assert config.debug is False
    assert config.max_diagnostic_keys == 50


def test_load_from_path(tmp_path):
    path = tmp_path / "boxref.yaml"
    path.write_text(
        "debug: true\n"
        "interop:\n"
        "  handles_cache_enabled: false\n"
        "  max_diagnostic_keys: 5\n"
        "unrelated: 1\n"
    )
    config = load_config(str(path))
    assert config.debug is True
    assert config.handles_cache_enabled is False
    assert config.max_diagnostic_keys == 5


def test_load_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "env.yaml"
    path.write_text("interop:\n  max_diagnostic_keys: 3\n")
    monkeypatch.setenv(CONFIG_ENV, str(path))
    assert load_config().max_diagnostic_keys == 3


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(str(path)) == RuntimeConfig()


@pytest.mark.parametrize("text", [
    "debug: 'yes'\n",
    "interop:\n  handles_cache_enabled: 1\n",
    "interop:\n  max_diagnostic_keys: true\n",
    "interop: [1, 2]\n",
    "- a\n- b\n",
])
def test_wrong_types_are_rejected(tmp_path, text):
    path = tmp_path / "bad.yaml"
    path.write_text(text)
    with pytest.raises(BoxValidationError):
        load_config(str(path))


def test_service_applies_config():
    svc = InteropService(RuntimeConfig(handles_cache_enabled=False))
    assert svc.handles_cache_enabled is False
    assert svc.resolver.cache_enabled is False
    svc.handles_cache_enabled = True
    assert svc.resolver.cache_enabled is True


def test_debug_tracing_goes_to_stderr(capsys):
    svc = InteropService(RuntimeConfig(debug=True))
    svc.dereference({"a": 1}, "a")
    err = capsys.readouterr().err
    assert "[DBG]" in err
    assert "ORDERED_MAP" in err
