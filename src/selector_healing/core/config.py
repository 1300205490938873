from pydantic_settings import BaseSettings
from pydantic import Field, validator
from dotenv import load_dotenv

load_dotenv("src/selector_healing/.env")

class Settings(BaseSettings):
    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO", description="Root log level")
    LOG_DIR: str = Field(default="logs", description="Directory for rotating log files")

    # Storage Configuration
    DATA_DIR: str = Field(default="data", description="Directory for persisted sessions and identifications")

    # Self-Healing Configuration
    SELF_HEALING_ENABLED: bool = Field(default=True, description="Global switch for selector healing")
    SELF_HEALING_CONFIG_PATH: str = Field(default="config/self_healing.yaml", description="Path to the healing policy YAML")

    # LLM Configuration (element descriptions)
    MODEL_PROVIDER: str = "online"  # "online" for Gemini, "local" for Ollama
    GEMINI_API_KEY: str | None = None
    ONLINE_MODEL: str = "gemini/gemini-2.5-flash"
    LOCAL_MODEL: str = "llama3"
    ENABLE_AI_DESCRIPTIONS: bool = Field(default=False, description="Use the LLM description agent instead of the deterministic label")
    IDENTIFICATION_TIMEOUT: float = Field(default=15.0, description="Per-call timeout for page inspection and description generation (in seconds)")

    # Prediction Service Configuration
    PREDICTION_SERVICE_URL: str | None = Field(default=None, description="URL of the selector prediction service")
    PREDICTION_TIMEOUT: int = Field(default=10, description="HTTP timeout for prediction requests (in seconds)")

    @validator('MODEL_PROVIDER')
    def validate_model_provider(cls, v):
        """Validate that MODEL_PROVIDER is either 'online' or 'local'."""
        if v.lower() not in ['online', 'local']:
            raise ValueError(f"MODEL_PROVIDER must be 'online' or 'local', got '{v}'")
        return v.lower()

    @validator('LOG_LEVEL')
    def validate_log_level(cls, v):
        """Validate that LOG_LEVEL is a standard logging level name."""
        if v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError(f"LOG_LEVEL must be a standard logging level, got '{v}'")
        return v.upper()

    @validator('IDENTIFICATION_TIMEOUT')
    def validate_identification_timeout(cls, v):
        if v <= 0:
            raise ValueError(f"IDENTIFICATION_TIMEOUT must be positive, got {v}")
        return v

    @validator('PREDICTION_TIMEOUT')
    def validate_prediction_timeout(cls, v):
        """Validate that PREDICTION_TIMEOUT is positive."""
        if v <= 0:
            raise ValueError(f"PREDICTION_TIMEOUT must be positive, got {v}")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = 'allow'  # Allow extra fields from .env file

settings = Settings()
