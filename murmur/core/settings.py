from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SAFETY_THRESHOLDS = {
    "HARM_CATEGORY_HATE_SPEECH": "BLOCK_ONLY_HIGH",
    "HARM_CATEGORY_DANGEROUS_CONTENT": "BLOCK_NONE",
    "HARM_CATEGORY_HARASSMENT": "BLOCK_MEDIUM_AND_ABOVE",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT": "BLOCK_LOW_AND_ABOVE",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    env: str = "dev"
    log_level: str = "INFO"

    # Unset -> in-process stores. Production points these at Postgres / Redis.
    database_url: Optional[str] = None
    redis_url: Optional[str] = None

    jwt_secret: str
    jwt_issuer: str = "murmur"
    access_token_minutes: int = 30

    content_enc_key_b64: Optional[str] = None
    admin_review_token: str

    cors_origins: str = "http://localhost:3000"

    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-1.5-flash"
    safety_thresholds: Dict[str, str] = DEFAULT_SAFETY_THRESHOLDS
    classifier_timeout_seconds: float = 10.0
    classifier_max_attempts: int = 2
    classifier_failure_policy: Literal["reject", "quarantine", "publish"] = "reject"

    persistence_timeout_seconds: float = 10.0

    auth_mode: Literal["required", "optional"] = "required"

    max_content_length: int = 280
    max_attachment_bytes: int = 2 * 1024 * 1024
    allowed_image_types: List[str] = ["png", "jpeg", "gif", "webp"]

    rate_limit_enabled: bool = True
    submission_rate_limit: str = "10/minute"
    feed_limit: int = 100

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
