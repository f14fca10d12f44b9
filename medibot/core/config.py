from typing import Annotated, List, Optional, Literal
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from pydantic import field_validator, model_validator
import json
from enum import Enum


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    # Environment Configuration
    ENVIRONMENT: Environment = Environment.DEVELOPMENT

    # Project Information
    PROJECT_NAME: str = "MediBot Reminders"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/api/v1"

    # Timezone used for reminder clock times when a medication has none
    DEFAULT_TIMEZONE: Optional[str] = None

    # Firebase (Firestore store + FCM push)
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_CREDENTIALS_JSON: Optional[str] = None  # path or inline JSON via env

    # Medication store backend
    STORE_BACKEND: Literal["firestore", "memory"] = "firestore"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    # API Security
    VALID_API_KEYS: Annotated[List[str], NoDecode] = []
    REQUIRE_API_KEY: bool = False

    @field_validator("DEFAULT_TIMEZONE", mode="before")
    @classmethod
    def blank_timezone_is_none(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str) and v.strip() == "":
            return None
        return v

    @field_validator("VALID_API_KEYS", mode="before")
    @classmethod
    def parse_api_keys(cls, v):
        # Accept a JSON list or a comma-separated string
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
            except (json.JSONDecodeError, TypeError):
                return [key.strip() for key in v.split(",") if key.strip()]
            return parsed if isinstance(parsed, list) else [str(parsed)]
        return v

    @model_validator(mode="after")
    def validate_environment_config(self) -> "Settings":
        """Validate environment-specific configuration requirements"""
        if self.is_production:
            if self.STORE_BACKEND == "memory":
                raise ValueError("Production must use the firestore store backend")
            if self.REQUIRE_API_KEY and not self.VALID_API_KEYS:
                raise ValueError("REQUIRE_API_KEY is set but VALID_API_KEYS is empty")
        return self

    # Environment-specific properties
    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == Environment.PRODUCTION

    model_config = SettingsConfigDict(case_sensitive=True, env_file=".env", extra='ignore')


settings = Settings()
