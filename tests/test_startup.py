"""Startup config logging tests."""

from pspsync.common.config import CommonSettings
from pspsync.common.startup import log_startup_config


def test_secrets_are_redacted():
    settings = CommonSettings(store_project_key="proj", store_client_secret="s3cr3t", hmac_key=None)

    config = log_startup_config(settings, ["store_project_key", "store_client_secret", "hmac_key", "log_level"])

    assert config == {
        "store_project_key": "proj",
        "store_client_secret": "<redacted>",
        "hmac_key": "<unset>",
        "log_level": settings.log_level,
    }


def test_non_secret_keys_are_logged_verbatim():
    settings = CommonSettings(interaction_type_key="psp-interaction-notification", hmac_key="ABCD")

    config = log_startup_config(settings, ["interaction_type_key", "hmac_key"])

    assert config == {"interaction_type_key": "psp-interaction-notification", "hmac_key": "<redacted>"}
