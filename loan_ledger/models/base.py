"""Shared base models and common type aliases."""

from datetime import datetime, timezone
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ModelValidationError


logger = logging.getLogger(__name__)

Money = int
PercentageBps = int


def utc_now() -> datetime:
    """Return current UTC timestamp."""
    return datetime.now(timezone.utc)


class BaseDocumentModel(BaseModel):
    """Base document schema for store-backed ledger models."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        use_enum_values=False,
    )

    id: str = Field(..., min_length=3, description="Document ID.")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=1, ge=1)
    is_deleted: bool = Field(default=False)

    def to_document(self) -> Dict[str, Any]:
        """Serialize model into a store-ready document dictionary.

        Returns:
            Dict[str, Any]: Serialized model payload.

        Raises:
            ModelValidationError: If serialization fails.
        """
        try:
            return self.model_dump(mode="json", exclude_none=True)
        except Exception as exc:
            logger.exception("Failed to serialize %s with id=%s", self.__class__.__name__, self.id)
            raise ModelValidationError(str(exc))

    @classmethod
    def from_document(cls, data: Dict[str, Any], doc_id: Optional[str] = None):
        """Create model instance from stored document data.

        Args:
            data: Stored document payload.
            doc_id: Optional document id.

        Returns:
            BaseDocumentModel: Typed domain instance.

        Raises:
            ModelValidationError: If payload parsing fails.
        """
        try:
            payload = dict(data)
            if doc_id is not None and "id" not in payload:
                payload["id"] = doc_id
            return cls(**payload)
        except Exception as exc:
            logger.exception("Failed to parse stored payload for %s doc_id=%s", cls.__name__, doc_id)
            raise ModelValidationError(str(exc))

    def bumped(self, **changes: Any):
        """Return a copy with `changes` applied, next version and fresh `updated_at`."""
        payload = self.model_dump()
        payload.update(changes)
        payload["updated_at"] = changes.get("updated_at", utc_now())
        payload["version"] = self.version + 1
        return self.__class__.model_validate(payload)
