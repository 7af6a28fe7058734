"""Configuration management for exposure-chain."""

import logging
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

# Hard per-request limits imposed by the document store and push transport.
# Configured sizes are clamped to these.
STORE_WRITE_LIMIT = 500
PUSH_MULTICAST_LIMIT = 500
STORE_IN_QUERY_LIMIT = 30


class StiIncubationTable(BaseModel):
    """Maximum incubation period, in days, per STI type.

    The window for one hop of a chain is the hop's interaction date minus the
    largest incubation period among the reported STI types. Unknown types fall
    back to ``Settings.default_incubation_days``.

    Override a single entry with e.g. ``EXPOSURE_STI_INCUBATION__SYPHILIS=60``.
    """

    model_config = ConfigDict(extra="forbid")

    hiv: int = Field(default=30, gt=0)
    syphilis: int = Field(default=90, gt=0)
    gonorrhea: int = Field(default=14, gt=0)
    chlamydia: int = Field(default=21, gt=0)
    hpv: int = Field(default=180, gt=0)
    herpes: int = Field(default=21, gt=0)
    other: int = Field(default=30, gt=0)

    def days_for(self, sti_type: str) -> int | None:
        """Incubation days for a type name, case-insensitive; None if unknown."""
        value = getattr(self, sti_type.strip().lower(), None)
        return value if isinstance(value, int) else None

    def longest(self) -> int:
        return max(self.model_dump().values())


class Settings(BaseSettings):
    """Exposure-chain configuration loaded from environment variables.

    All settings can be overridden via environment variables with the
    EXPOSURE_ prefix. For example:
        EXPOSURE_QDRANT_URL=http://localhost:6333
        EXPOSURE_RETENTION_DAYS=120
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    collection_prefix: str = Field(
        default="exposure",
        description="Prefix for Qdrant collection names",
    )

    # Retention and traversal
    retention_days: int = Field(
        default=180,
        ge=1,
        description="Interactions older than this are never surfaced as contacts",
    )
    max_chain_depth: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum hop depth from the reporter",
    )
    max_traversal_visits: int = Field(
        default=10000,
        ge=1,
        description="Upper bound on nodes expanded in a single propagation run",
    )
    default_incubation_days: int = Field(
        default=30,
        gt=0,
        description="Incubation period for STI types missing from the table",
    )
    sti_incubation: StiIncubationTable = Field(
        default_factory=StiIncubationTable,
        description="Per-STI maximum incubation periods",
    )

    # Batching
    batching_enabled: bool = Field(
        default=True,
        description="Batch notification writes and push sends during propagation",
    )
    notification_batch_size: int = Field(
        default=STORE_WRITE_LIMIT,
        ge=1,
        description="Documents per store write (clamped to the store limit)",
    )
    push_multicast_size: int = Field(
        default=PUSH_MULTICAST_LIMIT,
        ge=1,
        description="Tokens per multicast (clamped to the transport limit)",
    )
    identity_in_query_limit: int = Field(
        default=STORE_IN_QUERY_LIMIT,
        ge=1,
        le=STORE_IN_QUERY_LIMIT,
        description="Identities per batched lookup",
    )

    # Caches (scoped to one propagation run)
    query_cache_max_entries: int = Field(default=1000, ge=1)
    user_cache_max_entries: int = Field(default=500, ge=1)

    # Push transport
    fcm_project_id: str | None = Field(default=None, description="Firebase project id")
    fcm_access_token: str | None = Field(
        default=None,
        description="OAuth2 bearer token for the FCM HTTP v1 API",
    )
    fcm_base_url: str = Field(default="https://fcm.googleapis.com")
    push_timeout_seconds: float = Field(default=10.0, gt=0)
    push_max_concurrent: int = Field(default=20, ge=1, le=500)
    push_channel_id: str = Field(default="exposure_notifications")

    # Input limits
    max_sti_types: int = Field(default=20, ge=1)
    max_reporter_id_length: int = Field(default=128, ge=1)
    max_username_length: int = Field(default=50, ge=1)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")

    model_config = {
        "env_prefix": "EXPOSURE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_retention(self) -> "Settings":
        """Retention must cover the longest incubation period.

        Otherwise the first hop of a long-incubation report would be clamped
        to an empty window.
        """
        longest = max(self.sti_incubation.longest(), self.default_incubation_days)
        if self.retention_days < longest:
            raise ValueError(
                f"retention_days ({self.retention_days}) must be at least the longest "
                f"incubation period ({longest})"
            )
        return self

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Production deployments must be able to deliver pushes."""
        if self.env == "production":
            if not self.fcm_project_id or not self.fcm_access_token:
                raise ValueError(
                    "EXPOSURE_FCM_PROJECT_ID and EXPOSURE_FCM_ACCESS_TOKEN must be set in production"
                )
        elif not self.fcm_project_id:
            logger.debug("No FCM project configured; push delivery is disabled")
        return self

    @property
    def effective_batch_size(self) -> int:
        return min(self.notification_batch_size, STORE_WRITE_LIMIT)

    @property
    def effective_multicast_size(self) -> int:
        return min(self.push_multicast_size, PUSH_MULTICAST_LIMIT)


# Global settings instance
settings = Settings()
