from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings configuration class for the web3 query client."""

    app_name: str = "web3_query"

    # API Configuration
    api_key: Optional[str] = None
    api_key_header: str = "X-API-Key"
    evm_base_url: str = "https://deep-index.moralis.io/api/v2.2"
    solana_base_url: str = "https://solana-gateway.moralis.io"
    streams_base_url: str = "https://streams.moralis.io/api/v2.2"

    # Credential file lookup
    credential_file: str = ".env"
    credential_key: str = "MORALIS_API_KEY"

    # Request Configuration
    request_timeout: float = 30.0  # Seconds
    max_retries: int = 3  # Retries after the initial attempt
    backoff_initial: float = 0.1  # Seconds
    backoff_max: float = 5.0  # Seconds

    # Pagination / Batch Configuration
    page_limit: int = 100
    max_pages: int = 1000
    batch_concurrency: int = 5

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="MORALIS_",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
