import secrets

from pydantic import ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings

SUPPORTED_ALGORITHMS = ("SHA-1", "SHA-256", "SHA-512")


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 3000

    # Challenge signing key, regenerated per process unless provided
    altcha_hmac_key: str = Field(default_factory=lambda: secrets.token_hex(16), min_length=1)

    # Proof of Work
    altcha_max_number: int = Field(50_000, gt=0)  # upper bound of the search space
    altcha_algorithm: str = "SHA-256"
    altcha_challenge_ttl_seconds: int = Field(300, ge=0)  # 0 disables expiry

    # CORS
    cors_origins: list[str] | str = ["*"]

    # Logging
    log_level: str = "info"
    log_format: str = "console"  # "console" or "json"

    @field_validator("altcha_algorithm")
    @classmethod
    def validate_algorithm(cls, v):
        """Normalize and reject digest algorithms the challenge format can't carry."""
        v = v.upper()
        if v not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported algorithm: {v}")
        return v

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        if v.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return v.lower()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        if v not in ("console", "json"):
            raise ValueError("log_format must be 'console' or 'json'")
        return v


settings = Settings()
