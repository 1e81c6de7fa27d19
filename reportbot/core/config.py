from __future__ import annotations
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "report-chatbot-service"
    log_level: str = "INFO"

    llm_provider: str = "anthropic"  # anthropic | openai | openai_compatible | bedrock | ollama
    llm_api_key: Optional[str] = None
    llm_model: str = "claude-3-5-sonnet-20241022"
    anthropic_base_url: str = "https://api.anthropic.com"
    anthropic_version: str = "2023-06-01"
    llm_base_url: str = "https://api.openai.com/v1"
    llm_chat_path: str = "/chat/completions"
    llm_auth_header: str = "Authorization"
    llm_auth_prefix: str = "Bearer "
    bedrock_region: str = "us-east-1"
    bedrock_model_id: str = "anthropic.claude-3-5-sonnet-20241022-v2:0"
    ollama_base_url: str = "http://localhost:11434"
    ollama_default_model: str = "llama3.1"
    llm_max_tokens: int = Field(default=4000, ge=1, le=64000)
    llm_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    llm_timeout_sec: float = 60.0
    llm_extended_timeout_sec: float = 300.0

    max_upload_bytes: int = 10 * 1024 * 1024
    parse_max_text_chars: int = 50_000
    table_max_rows: int = 1000
    table_sample_rows: int = 10
    table_preview_rows: int = 5
    context_max_file_chars: int = 20_000
    context_max_total_chars: int = 120_000
    chat_history_limit: int = 10

    report_store_backend: str = "memory"  # memory | json
    reports_data_path: str = "data/reports.json"


settings = Settings()
