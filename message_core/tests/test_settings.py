from message_core.config.settings import Settings
from message_core.resolution.resolver import ResolverConfig


def test_resolver_config_defaults_match_settings():
    assert ResolverConfig.from_settings(Settings()) == ResolverConfig()


def test_resolver_config_from_overrides(monkeypatch):
    monkeypatch.setenv("MESSAGE_CORE_CLOSE_MATCH_TOLERANCE_MS", "2500")
    cfg = ResolverConfig.from_settings(Settings(max_page_size=30))
    assert cfg.close_match_tolerance_ms == 2500
    assert cfg.max_page_size == 30
    assert cfg.exact_match_tolerance_ms == 500
