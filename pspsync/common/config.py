"""Central environment-driven settings for the notification service.

The service process loads this once at startup. Behavior is controlled by
environment variables (see `.env.example`).
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "pspsync-notification"
    log_level: str = "INFO"
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"

    store_api_url: str = "https://api.europe-west1.gcp.commercetools.com"
    store_auth_url: str = "https://auth.europe-west1.gcp.commercetools.com"
    store_project_key: str = ""
    store_client_id: str = ""
    store_client_secret: str = ""
    store_scope: str = ""
    store_timeout_seconds: float = 10.0

    remove_sensitive_data: bool = True
    hmac_key: str | None = None
    payment_method_names: dict[str, dict[str, str]] = Field(
        default_factory=lambda: {
            "scheme": {"en": "Credit Card"},
            "paypal": {"en": "PayPal"},
            "ideal": {"en": "iDEAL"},
            "klarna": {"en": "Klarna Pay Later"},
            "applepay": {"en": "Apple Pay"},
        }
    )
    payment_ready_fields: list[str] = Field(
        default_factory=lambda: ["adyenMerchantAccount", "commercetoolsProjectKey"]
    )
    interaction_type_key: str = "psp-interaction-notification"

    notification_concurrency: int = 10
    update_max_retries: int = 20
    missing_payment_max_attempts: int = 7
    missing_payment_retry_delay_seconds: float = 1.0
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
