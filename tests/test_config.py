from buildsched.anomalies import WarningOptions
from buildsched.config import Settings


def test_defaults(monkeypatch):
    for name in ("BUILDSCHED_DEBOUNCE_SECONDS", "BUILDSCHED_DEFAULT_DURATION_DAYS", "BUILDSCHED_WARN_OVERDUE"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings()
    assert settings.DEBOUNCE_SECONDS == 0.3
    assert settings.DEFAULT_DURATION_DAYS == 7
    assert settings.WARN_DEPENDENCY_OVERLAP is True
    assert settings.WARN_OVERDUE is False


def test_environment_overrides_and_bad_values(monkeypatch):
    monkeypatch.setenv("BUILDSCHED_DEBOUNCE_SECONDS", "1.5")
    monkeypatch.setenv("BUILDSCHED_DEFAULT_DURATION_DAYS", "soon")
    monkeypatch.setenv("BUILDSCHED_WARN_OVERDUE", "yes")
    settings = Settings()
    assert settings.DEBOUNCE_SECONDS == 1.5
    assert settings.DEFAULT_DURATION_DAYS == 7
    assert WarningOptions.from_settings(settings).overdue is True


def test_database_url_prefers_environment(monkeypatch):
    monkeypatch.setenv("BUILDSCHED_DB_URL", "sqlite:///:memory:")
    assert Settings().get_database_url() == "sqlite:///:memory:"
