from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    PORT: int = 3000
    LOG_JSON: bool = True
    LOG_LEVEL: str = "INFO"

    # Salesforce Core (JWT bearer flow); all four enable the record sink
    SF_INSTANCE_URL: str | None = None
    SF_CONSUMER_KEY: str | None = None
    SF_USERNAME: str | None = None
    PRIVATE_KEY: str | None = None  # PEM, "\n" escaped
    SF_API_VERSION: str = "59.0"
    SF_OBJECT_NAME: str = "WhatsApp_Interaction__c"
    SF_MESSAGE_ID_FIELD: str = "Message_ID__c"
    SF_PAYLOAD_FIELD: str = "Raw_Payload__c"
    PAYLOAD_MAX_CHARS: int = 131000

    # Marketing Cloud ENS
    ENS_SIGNATURE_KEY: str | None = None  # base64
    ENS_SIGNATURE_HEADER: str = "x-sfmc-ens-signature"
    INBOUND_EVENT_TYPE: str = "EngagementEvents.OttMobileOriginated"
    IGNORED_EVENT_TYPES: str = ""  # Comma-separated list of event types

    MAX_EVENTS: int = Field(default=100, ge=1)
    HTTP_TIMEOUT_SECONDS: float = 10.0
    TOKEN_TTL_SECONDS: int = 50 * 60
    ASSERTION_TTL_SECONDS: int = 5 * 60

    @property
    def salesforce_enabled(self) -> bool:
        return all(
            (self.SF_INSTANCE_URL, self.SF_CONSUMER_KEY, self.SF_USERNAME, self.PRIVATE_KEY)
        )

    @property
    def ignored_event_types(self) -> frozenset[str]:
        return frozenset(t.strip() for t in self.IGNORED_EVENT_TYPES.split(",") if t.strip())

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
