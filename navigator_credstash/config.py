"""
CredStash Configuration — validated settings loaded from the environment.

Environment variables:
    CREDSTASH_TABLE          DynamoDB table name (default: credential-store)
    CREDSTASH_KMS_KEY        KMS key id or alias (default: alias/credstash)
    GCREDSTASH_TABLE         fallback for CREDSTASH_TABLE
    GCREDSTASH_KMS_KEY       fallback for CREDSTASH_KMS_KEY
    AWS_REGION               region (falls back to AWS_DEFAULT_REGION)
    CREDSTASH_ENDPOINT_URL   endpoint override for local emulators
    CREDSTASH_VERSION_WIDTH  zero-pad width for generated versions (default: 0)
"""
import os
import re
import logging
from typing import Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("navigator.credstash")

DEFAULT_TABLE = "credential-store"
DEFAULT_KMS_KEY = "alias/credstash"

_TABLE_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{3,255}$")


class CredStashConfig(BaseModel):
    """Validated credential store configuration."""

    table: str = Field(default=DEFAULT_TABLE)
    kms_key_id: str = Field(default=DEFAULT_KMS_KEY, min_length=1)
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    version_width: int = Field(default=0, ge=0, le=19)
    wait_delay: int = Field(default=20, ge=1)
    wait_max_attempts: int = Field(default=25, ge=1)

    @field_validator("table")
    @classmethod
    def validate_table(cls, v: str) -> str:
        """Validate DynamoDB table naming rules."""
        if not _TABLE_NAME_PATTERN.match(v):
            raise ValueError(
                f"Invalid table name {v!r}: use 3-255 characters "
                "from [A-Za-z0-9_.-]"
            )
        return v

    @classmethod
    def from_env(cls) -> "CredStashConfig":
        """Create CredStashConfig by loading values from environment.

        Returns:
            Populated CredStashConfig instance.
        """
        config = cls(
            table=(
                os.environ.get("CREDSTASH_TABLE")
                or os.environ.get("GCREDSTASH_TABLE")
                or DEFAULT_TABLE
            ),
            kms_key_id=(
                os.environ.get("CREDSTASH_KMS_KEY")
                or os.environ.get("GCREDSTASH_KMS_KEY")
                or DEFAULT_KMS_KEY
            ),
            region=os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION"),
            endpoint_url=os.environ.get("CREDSTASH_ENDPOINT_URL") or None,
            version_width=int(os.environ.get("CREDSTASH_VERSION_WIDTH", "0")),
        )
        logger.debug(
            "Loaded credstash config: table=%s kms_key=%s region=%s",
            config.table, config.kms_key_id, config.region,
        )
        return config
