"""
Store configuration.

Values come from the environment (a local .env file is loaded first) and
fall back to the storefront defaults below.
"""
import os
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    free_shipping_threshold: float = Field(499.0, ge=0, description="Subtotal at which shipping becomes free")
    flat_shipping_rate: float = Field(40.0, ge=0, description="Shipping charged below the threshold")
    tax_rate: float = Field(0.08, ge=0, le=1)
    currency: str = Field("INR", description="ISO currency code")
    # Simulated card authorization; there is no real card network call.
    card_authorization_delay: float = Field(2.0, ge=0, description="Seconds")
    razorpay_key_secret: Optional[str] = Field(None, description="Enables gateway signature checks when set")
    session_cookie: str = "token"
    session_ttl_days: int = Field(7, ge=1)
    cookie_secure: bool = False
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "Settings":
        values = {}
        env_map = {
            "FREE_SHIPPING_THRESHOLD": "free_shipping_threshold",
            "FLAT_SHIPPING_RATE": "flat_shipping_rate",
            "TAX_RATE": "tax_rate",
            "CURRENCY": "currency",
            "CARD_AUTHORIZATION_DELAY": "card_authorization_delay",
            "RAZORPAY_KEY_SECRET": "razorpay_key_secret",
            "SESSION_TTL_DAYS": "session_ttl_days",
        }
        for env_name, field_name in env_map.items():
            value = os.getenv(env_name)
            if value:
                values[field_name] = value
        if os.getenv("ENV") == "production" or os.getenv("COOKIE_SECURE") == "1":
            values["cookie_secure"] = True
        origins = os.getenv("CORS_ORIGINS")
        if origins:
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
        return cls(**values)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
