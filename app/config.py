from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Dict, Any
import os

class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Configuration
    api_bearer_token: str

    # LLM Configuration (any OpenAI-compatible endpoint)
    llm_api_key: str = ""
    llm_base_url: str = "https://openrouter.ai/api/v1"
    llm_model: str = "google/gemini-2.5-flash"
    llm_timeout: int = 45
    llm_max_tokens: int = 8192
    llm_temperature: float = 0.7
    llm_top_p: float = 0.95
    llm_concurrency_limit: int = 3  # 1 answers questions strictly one by one

    # App Configuration
    app_name: str = "Document Query Service"
    app_version: str = "1.0.0"
    app_url: str = "http://localhost:8000"
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: str = "*"

    # DOCUMENT PROCESSING
    download_timeout: int = 30
    max_document_size: int = 20 * 1024 * 1024  # 20MB limit
    max_context_chars: int = 100000  # 100k characters
    user_agent: str = "Mozilla/5.0 (compatible; DocumentQuery/1.0)"

    # UPLOADS
    upload_dir: str = "uploads"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)

        # Validate configuration
        self._validate_config()

    def _validate_config(self):
        """Validate configuration settings"""
        if not self.api_bearer_token.strip():
            raise ValueError("api_bearer_token must not be empty")

        if self.llm_concurrency_limit < 1:
            raise ValueError("llm_concurrency_limit must be at least 1")

        if self.download_timeout <= 0 or self.llm_timeout <= 0:
            raise ValueError("timeouts must be positive")

        if self.max_document_size < 1024:
            raise ValueError("max_document_size must be at least 1KB")

        if self.max_context_chars < 1:
            raise ValueError("max_context_chars must be at least 1")

    def get_cors_origins(self) -> List[str]:
        """Parse the comma-separated CORS origin list"""
        return [origin.strip() for origin in self.cors_origins.split(',') if origin.strip()] or ["*"]

    def get_llm_config(self) -> Dict[str, Any]:
        """Get LLM-specific configuration"""
        return {
            'model': self.llm_model,
            'base_url': self.llm_base_url,
            'timeout': self.llm_timeout,
            'max_tokens': self.llm_max_tokens,
            'temperature': self.llm_temperature,
            'top_p': self.llm_top_p,
            'concurrency_limit': self.llm_concurrency_limit
        }

    def get_document_config(self) -> Dict[str, Any]:
        """Get document-processing configuration"""
        return {
            'download_timeout': self.download_timeout,
            'max_document_size': self.max_document_size,
            'max_context_chars': self.max_context_chars,
            'upload_dir': self.upload_dir
        }

    def get_safe_config(self) -> Dict[str, Any]:
        """Configuration snapshot with secrets redacted, for startup logging"""
        return {
            'app_name': self.app_name,
            'app_version': self.app_version,
            'debug': self.debug,
            'log_level': self.log_level,
            'environment': os.getenv('ENVIRONMENT', 'development'),
            'api_bearer_token': '***REDACTED***',
            'llm_api_key': '***REDACTED***' if self.llm_api_key else 'NOT_SET',
            'llm': self.get_llm_config(),
            'documents': self.get_document_config(),
            'cors_origins': self.get_cors_origins()
        }


def is_production(settings: Settings) -> bool:
    """Check if running in production environment"""
    return not settings.debug and os.getenv('ENVIRONMENT', '').lower() == 'production'
