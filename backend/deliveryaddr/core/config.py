from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    PROJECT_NAME: str = "DeliveryAddressPro"
    API_V1_STR: str = "/api/v1"

    # Use SQLite for local development without Docker
    # format: sqlite:///./sql_app.db
    DATABASE_URL: str = "sqlite:///./delivery_address.db"

    # Road Address API (juso.go.kr)
    JUSO_API_KEY: str = ""
    JUSO_API_URL: str = "https://business.juso.go.kr/addrlink/addrLinkApi.do"
    JUSO_TIMEOUT_SECONDS: float = 5.0
    JUSO_COUNT_PER_PAGE: int = 10

    # OpenAI-compatible LLM endpoint (Ollama by default)
    LLM_BASE_URL: str = "http://localhost:11434/v1"
    LLM_API_KEY: str = "ollama"
    LLM_MODEL: str = "llama3"

    # Detail address AI fallback
    ENABLE_AI_ADDRESS_NORMALIZATION: bool = False
    AI_CONFIDENCE_THRESHOLD: float = 0.9
    LEARNED_SIMILARITY_THRESHOLD: float = 0.85

    # Bulk processing
    BATCH_SIZE: int = 5
    BATCH_PAUSE_SECONDS: float = 0.1
    MAX_ADDRESS_LENGTH: int = 50
    MAX_BULK_ROWS: int = 1000

    class Config:
        case_sensitive = True
        env_file = ".env"
        extra = "ignore"


settings = Settings()
