"""
Application settings

Read once from the environment (and a local .env file) at startup and then
passed around explicitly. The model is frozen so nothing can rewrite a
secret or an expiry window after the app is built.
"""

import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

DEVELOPMENT = "development"
PRODUCTION = "production"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    environment: str = Field(DEVELOPMENT, description="development | production | test")
    jwt_secret: str = Field("change-me-access-secret-32-bytes-minimum", min_length=32)
    jwt_refresh_secret: str = Field("change-me-refresh-secret-32-bytes-minimum", min_length=32)
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(15, gt=0)
    refresh_token_expire_days: int = Field(7, gt=0)
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    bcrypt_rounds: int = Field(12, ge=4, le=31)
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    port: int = 8000

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    @property
    def is_development(self) -> bool:
        return self.environment == DEVELOPMENT

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        values = {
            "environment": os.getenv("ENVIRONMENT"),
            "jwt_secret": os.getenv("JWT_SECRET"),
            "jwt_refresh_secret": os.getenv("JWT_REFRESH_SECRET"),
            "access_token_expire_minutes": os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES"),
            "refresh_token_expire_days": os.getenv("REFRESH_TOKEN_EXPIRE_DAYS"),
            "database_url": os.getenv("DATABASE_URL"),
            "database_name": os.getenv("DATABASE_NAME"),
            "bcrypt_rounds": os.getenv("BCRYPT_ROUNDS"),
            "admin_email": os.getenv("ADMIN_EMAIL"),
            "admin_password": os.getenv("ADMIN_PASSWORD"),
            "log_level": os.getenv("LOG_LEVEL"),
            "port": os.getenv("PORT"),
        }
        origins = os.getenv("CORS_ORIGINS")
        if origins:
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
        # unset variables fall back to the field defaults
        return cls(**{k: v for k, v in values.items() if v is not None})
