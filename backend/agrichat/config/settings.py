# /agrichat/config/settings.py

import sys
import re
import logging
from typing import Set
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Steps whose free text always belongs to the step itself and never to the
# AI-assisted shortcut path.
DEFAULT_STRICT_FLOWS = [
    "signup_name",
    "signup_account_type",
    "signup_country",
    "signup_farmers_id",
    "signup_otp",
    "unlock_otp",
    "upload_name",
    "upload_category",
    "upload_short_desc",
    "upload_desc",
    "upload_price",
    "upload_qty",
    "upload_unit",
    "upload_photo",
    "inventory_browse",
    "harvest_window",
    "harvest_qty",
    "harvest_unit",
    "harvest_notes",
    "quote_currency",
    "quote_available_qty",
    "quote_delivery_date",
    "quote_notes",
    "hbr_message",
    "order_accept_eta",
    "order_accept_shipping",
    "order_reject_reason",
    "order_update_status",
    "order_update_tracking",
    "tx_check_id",
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # WhatsApp Cloud API
    whatsapp_access_token: str = ""
    whatsapp_phone_id: str = ""
    whatsapp_verify_token: str
    whatsapp_app_secret: str | None = None
    whatsapp_admin_secret: str | None = None
    whatsapp_api_version: str = "v24.0"
    whatsapp_graph_url: str = "https://graph.facebook.com"
    whatsapp_token_poll_seconds: int = 30
    whatsapp_token_ttl_seconds: int = 60 * 60 * 24

    # Session store
    session_backend: str = "redis"
    session_ttl_seconds: int = 60 * 30
    session_sweep_interval_seconds: int = 60
    session_serialize_per_channel: bool = False

    # Outbound queue
    outbound_queue_name: str = "wa-send"
    outbound_max_attempts: int = 5
    outbound_backoff_base_ms: int = 2000
    outbound_keep_completed: int = 1000
    outbound_keep_failed: int = 5000
    outbound_worker_concurrency: int = 5
    run_sender_in_process: bool = True

    # Ingestion
    dedupe_ttl_seconds: int = 600
    last_inbound_ttl_seconds: int = 60 * 60 * 48
    inbound_rate_limit_per_minute: int = 30
    idle_lock_days: int = 14
    template_window_hours: int = 24

    # Pairing, OTP and locking
    pairing_secret: str
    pairing_ttl_days: int = 90
    otp_ttl_seconds: int = 600
    otp_max_attempts: int = 5

    # AI
    openai_api_key: str | None = None
    openai_chat_model: str = "gpt-4o-mini"
    openai_moderation_model: str = "omni-moderation-latest"
    ai_shortcut_min_score: int = 2
    ai_strict_flows: str = ",".join(DEFAULT_STRICT_FLOWS)
    rag_cache_ttl_seconds: int = 60 * 60 * 2

    # Marketplace backend
    marketplace_api_url: str = "http://localhost:3000/api/v1"
    marketplace_service_key: str | None = None
    storage_public_base_url: str = ""
    seller_portal_url: str = "https://example.com/seller/orders"
    brand_name: str = "AgriMarket"

    # Deployment
    environment: str = Field(default="production")
    redis_url: str = "redis://localhost:6379"
    allowed_hosts: str = "*"

    # Observability
    alerting_webhook_url: str | None = None
    api_key: str | None = None

    # App Metadata & Limits
    api_version: str = "v1"
    rate_limit_per_minute: int = 120

    # ---------------- Validators ---------------- #

    @field_validator("whatsapp_phone_id")
    @classmethod
    def phone_id_must_be_digits(cls, v):
        if v and not re.match(r"^\d+$", v):
            raise ValueError("WHATSAPP_PHONE_ID must contain only digits")
        return v

    @field_validator("session_backend")
    @classmethod
    def session_backend_must_be_known(cls, v):
        v = (v or "").strip().lower()
        if v not in ("memory", "redis"):
            raise ValueError("SESSION_BACKEND must be 'memory' or 'redis'")
        return v

    @field_validator("pairing_secret")
    @classmethod
    def pairing_secret_length(cls, v):
        if len(v) < 16:
            raise ValueError("PAIRING_SECRET must be at least 16 characters long")
        return v

    @field_validator("outbound_max_attempts", "outbound_worker_concurrency", "ai_shortcut_min_score")
    @classmethod
    def must_be_positive(cls, v):
        if v < 1:
            raise ValueError("value must be >= 1")
        return v

    @property
    def strict_flows(self) -> Set[str]:
        return {f.strip() for f in self.ai_strict_flows.split(",") if f.strip()}

    @property
    def graph_base_url(self) -> str:
        return f"{self.whatsapp_graph_url.rstrip('/')}/{self.whatsapp_api_version}"


def validate_environment(settings_obj: Settings):
    try:
        if not settings_obj.whatsapp_verify_token:
            raise ValueError("WHATSAPP_VERIFY_TOKEN is required")

        if settings_obj.environment == "production":
            for var in ["whatsapp_access_token", "whatsapp_phone_id", "whatsapp_app_secret",
                        "whatsapp_admin_secret", "marketplace_service_key"]:
                if not getattr(settings_obj, var):
                    raise ValueError(f"{var.upper()} is required in production")

        return settings_obj

    except Exception as e:
        logger.critical(f"Environment validation failed: {e}")
        print(f"--- [ERROR] Environment validation failed: {e}")
        sys.exit(1)


settings = Settings()
validate_environment(settings)
