"""
Unit tests for configuration management.
"""

import os
from unittest.mock import patch

from hookgate.config import Settings


def test_settings_loads_from_environment():
    """Test that settings can be loaded from environment variables."""
    with patch.dict(os.environ, {
        'ENVIRONMENT': 'production',
        'LOG_LEVEL': 'DEBUG',
        'PORT': '8080',
        'SEND_REQUEST_TO': 'http://localhost:9000/start',
        'TRIGGER_TIMEOUT_SECONDS': '15',
        'ENV_BYTES_LIMIT_KB': '10',
        'METRICS_ENABLED': 'false',
    }):
        settings = Settings()

        assert settings.environment == 'production'
        assert settings.log_level == 'DEBUG'
        assert settings.port == 8080
        assert settings.send_request_to == 'http://localhost:9000/start'
        assert settings.trigger_timeout_seconds == 15
        assert settings.env_bytes_limit == 10 * 1024
        assert settings.metrics_enabled is False


def test_settings_has_default_values():
    """Test that settings have appropriate default values."""
    settings = Settings(_env_file=None)

    assert settings.port == 4000
    assert settings.build_api_root_url == 'https://app.bitrise.io'
    assert settings.trigger_timeout_seconds == 60
    assert settings.env_bytes_limit == 256 * 1024


def test_log_only_mode():
    """Test log only mode applies outside production without a target URL."""
    assert Settings(environment='development', send_request_to=None).is_log_only_mode is True
    assert Settings(environment='development', send_request_to='http://x').is_log_only_mode is False
    assert Settings(environment='production', send_request_to=None).is_log_only_mode is False
