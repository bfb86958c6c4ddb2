"""Service layer exports."""

from .credentials import NoCredentialsError, extract_bearer_token, extract_credentials
from .influxdb import InfluxDBService
from .token_cipher import TokenCipherService
from .token_manager import TokenManager
from .token_store import InMemoryTokenStore, SQLiteTokenStore, TokenStore
from .tool_executor import (
    AuthenticationRequiredError,
    OAuthToolExecutor,
    StaticTokenToolExecutor,
    ToolExecutor,
    UnknownToolError,
)
from .zoho_crm import ZohoCRMService

__all__ = [
    "AuthenticationRequiredError",
    "InMemoryTokenStore",
    "InfluxDBService",
    "NoCredentialsError",
    "OAuthToolExecutor",
    "SQLiteTokenStore",
    "StaticTokenToolExecutor",
    "TokenCipherService",
    "TokenManager",
    "TokenStore",
    "ToolExecutor",
    "UnknownToolError",
    "ZohoCRMService",
    "extract_bearer_token",
    "extract_credentials",
]
