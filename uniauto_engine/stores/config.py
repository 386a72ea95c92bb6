"""Configuration for the HTTP execution store."""

from pydantic import BaseModel, SecretStr


class HttpStoreConfig(BaseModel):
    """Configuration for the HTTP execution store."""

    base_url: str = "http://localhost:3000/api/"
    token: SecretStr | None = None
    timeout_s: float = 30
