import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Load environment variables from .env file if it exists
load_dotenv()

# Datastore rejects commits with more than 500 mutations
MAX_BATCH_SIZE = 500


class DatastoreConfig(BaseModel):
    """Configuration for Datastore connection and operations."""

    project_id: Optional[str] = Field(
        default_factory=lambda: os.getenv("DATASTORE_PROJECT_ID") or os.getenv("GOOGLE_CLOUD_PROJECT"),
        description="Google Cloud project ID (None lets the client infer it)"
    )

    database_id: str = Field(
        default_factory=lambda: os.getenv("DATASTORE_DATABASE_ID", ""),
        description="Datastore database ID ('' for the default database)"
    )

    namespace: Optional[str] = Field(
        default_factory=lambda: os.getenv("DATASTORE_NAMESPACE") or None,
        description="Partition namespace for all keys and queries"
    )

    credentials_json: Optional[str] = Field(
        default_factory=lambda: os.getenv("DATASTORE_CREDENTIALS_JSON") or None,
        description="Service account key as a JSON string; Application Default Credentials are used when empty"
    )

    # Kind configuration
    kind_prefix: str = Field(
        default_factory=lambda: os.getenv("DATASTORE_KIND_PREFIX", ""),
        description="Prefix to add to all kind names"
    )

    # Operation settings
    batch_size: int = Field(
        default=MAX_BATCH_SIZE,
        description="Entities per put_multi/delete_multi call"
    )

    timeout_seconds: float = Field(
        default=30.0,
        description="Deadline applied to every backend call, in seconds"
    )

    # Logging settings
    enable_debug_logging: bool = Field(
        default_factory=lambda: os.getenv("DATASTORE_DEBUG_LOGGING", "false").lower() == "true",
        description="Enable debug logging for Datastore operations"
    )

    @field_validator('batch_size')
    @classmethod
    def validate_batch_size(cls, v):
        """Validate batch size against the Datastore commit limit."""
        if v < 1 or v > MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")
        return v

    @field_validator('timeout_seconds')
    @classmethod
    def validate_timeout(cls, v):
        """Validate request timeout."""
        if v <= 0:
            raise ValueError("timeout_seconds must be positive")
        return v

    @field_validator('kind_prefix')
    @classmethod
    def validate_kind_prefix(cls, v):
        """Kinds starting with two underscores are reserved by Datastore."""
        if v.startswith("__"):
            raise ValueError("kind_prefix cannot start with '__' (reserved kinds)")
        return v

    def get_kind_name(self, base_name: str) -> str:
        """Get the full kind name with prefix.

        Args:
            base_name: Base kind name

        Returns:
            Kind name with the configured prefix
        """
        if self.kind_prefix:
            return f"{self.kind_prefix}{base_name}"
        return base_name

    @classmethod
    def from_env(cls) -> 'DatastoreConfig':
        """Create configuration from environment variables.

        Returns:
            DatastoreConfig instance
        """
        return cls()

    @classmethod
    def for_emulator(cls, project_id: str = "local-project") -> 'DatastoreConfig':
        """Create configuration for the local Datastore emulator.

        The client library switches to the emulator on its own when
        DATASTORE_EMULATOR_HOST is set; this only pins settings that make
        sense locally.

        Args:
            project_id: Project ID the emulator was started with

        Returns:
            DatastoreConfig instance configured for local development
        """
        return cls(
            project_id=project_id,
            database_id="",
            credentials_json=None,
            enable_debug_logging=True
        )

    model_config = ConfigDict(
        validate_assignment=True,
    )
