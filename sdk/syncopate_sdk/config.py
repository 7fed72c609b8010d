"""
Configuration for Syncopate SDK.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class SyncopateSettings(BaseSettings):
    """Client configuration loaded from environment."""

    # Store connection
    base_url: str = Field(default="http://localhost:8080", description="Store base URL")
    api_key: str | None = Field(default=None, description="Bearer token sent with every request")
    timeout: float = Field(default=30.0, description="Request timeout seconds")

    # Retries (network failures only)
    retry_failed: bool = Field(default=False, description="Retry failed requests")
    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    retry_delay: int = Field(default=1000, ge=0, description="Delay between retries in ms")

    # Entity types
    auto_create_entity_types: bool = Field(
        default=True, description="Create missing entity types on first use"
    )
    cache_entity_types: bool = Field(default=True, description="Cache entity type definitions")
    cache_ttl: int = Field(default=3600, ge=0, description="Entity type cache lifetime seconds")

    # Pagination
    batch_size: int = Field(default=25, ge=1, description="Page size for batched reads")

    model_config = {"env_prefix": "SYNCOPATE_"}

    @property
    def headers(self) -> dict[str, str]:
        """Extra request headers."""
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}"}
