import unittest

from cinema.core.config import DEFAULT_ROLLOVER_TIMEZONE, Settings


def _settings(**values) -> Settings:
    return Settings(_env_file=None, **values)


class TestSettings(unittest.TestCase):
    def test_blank_timezone_uses_default(self) -> None:
        self.assertEqual(_settings(DAILY_ROLLOVER_TIMEZONE="  ").DAILY_ROLLOVER_TIMEZONE, DEFAULT_ROLLOVER_TIMEZONE)

    def test_upstash_aliases_enable_remote_cache(self) -> None:
        settings = _settings(
            UPSTASH_REDIS_REST_URL="https://kv.example.com",
            UPSTASH_REDIS_REST_TOKEN="token",
        )
        self.assertEqual(settings.KV_REST_API_URL, "https://kv.example.com")
        self.assertTrue(settings.remote_cache_enabled)

    def test_remote_cache_disabled_without_token(self) -> None:
        self.assertFalse(_settings(KV_REST_API_URL="https://kv.example.com", KV_REST_API_TOKEN="").remote_cache_enabled)

    def test_cors_origins_accept_comma_separated(self) -> None:
        settings = _settings(CORS_ORIGINS="https://a.com, https://b.com")
        self.assertEqual(settings.CORS_ORIGINS, ["https://a.com", "https://b.com"])

    def test_only_consumed_settings_are_declared(self) -> None:
        self.assertNotIn("PORT", Settings.model_fields)
