from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "Apple Pay JS Example"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"

    ALLOWED_HOSTS: str = "*"

    # ── Apple Pay merchant settings ──
    APPLEPAY_STORE_NAME: str = "Just Eat"
    # Certificate sources, in order of precedence:
    #   1. APPLEPAY_MERCHANT_CERTIFICATE (base64 PKCS#12)
    #   2. APPLEPAY_USE_CERTIFICATE_STORE + APPLEPAY_MERCHANT_CERTIFICATE_THUMBPRINT
    #   3. APPLEPAY_MERCHANT_CERTIFICATE_FILE_NAME
    APPLEPAY_MERCHANT_CERTIFICATE: str = ""
    APPLEPAY_MERCHANT_CERTIFICATE_FILE_NAME: str = ""
    APPLEPAY_MERCHANT_CERTIFICATE_PASSWORD: str = ""
    APPLEPAY_USE_CERTIFICATE_STORE: bool = False
    APPLEPAY_MERCHANT_CERTIFICATE_THUMBPRINT: str = ""
    APPLEPAY_CERTIFICATE_STORE_NAME: str = "My"
    APPLEPAY_CERTIFICATE_STORE_LOCATION: str = "CurrentUser"
    APPLEPAY_CERTIFICATE_STORE_PATH: str = ""
    APPLEPAY_CACHE_CERTIFICATE: bool = True
    APPLEPAY_GATEWAY_TIMEOUT: float = 30.0

    WELL_KNOWN_DIRECTORY: str = ""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def allowed_hosts_list(self) -> list[str]:
        if self.ALLOWED_HOSTS.strip() == "*":
            return ["*"]
        return [host.strip() for host in self.ALLOWED_HOSTS.split(",") if host.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production"]
        if v.lower() not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of: {allowed}")
        return v.lower()

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        allowed = ["text", "json"]
        if v.lower() not in allowed:
            raise ValueError(f"LOG_FORMAT must be one of: {allowed}")
        return v.lower()

    @field_validator("APPLEPAY_CERTIFICATE_STORE_LOCATION")
    @classmethod
    def validate_store_location(cls, v: str) -> str:
        locations = {"currentuser": "CurrentUser", "localmachine": "LocalMachine"}
        normalized = locations.get(v.strip().lower())
        if normalized is None:
            raise ValueError(
                f"APPLEPAY_CERTIFICATE_STORE_LOCATION must be one of: {sorted(locations.values())}"
            )
        return normalized


settings = Settings()
