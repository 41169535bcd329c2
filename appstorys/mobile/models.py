"""Pending delivery records kept in the offline outbox."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


def _now() -> datetime:
    return datetime.now()


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    raise ValueError(f"Invalid timestamp: {value!r}")


@dataclass(frozen=True)
class PendingEvent:
    """An analytics event that could not be delivered live."""

    event: str
    campaign_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "campaign_id": self.campaign_id,
            "event": self.event,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingEvent":
        """Create from dictionary."""
        return cls(
            campaign_id=data.get("campaign_id"),
            event=data["event"],
            metadata=data.get("metadata"),
            timestamp=_parse_timestamp(data["timestamp"]),
        )


@dataclass(frozen=True)
class PendingCsatResponse:
    """A CSAT survey answer that could not be delivered live."""

    csat_id: str
    user_id: str
    rating: int
    feedback_option: Optional[str] = None
    additional_comments: Optional[str] = None
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "csat_id": self.csat_id,
            "user_id": self.user_id,
            "rating": self.rating,
            "feedback_option": self.feedback_option,
            "additional_comments": self.additional_comments,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingCsatResponse":
        """Create from dictionary."""
        return cls(
            csat_id=data["csat_id"],
            user_id=data["user_id"],
            rating=int(data["rating"]),
            feedback_option=data.get("feedback_option"),
            additional_comments=data.get("additional_comments"),
            timestamp=_parse_timestamp(data["timestamp"]),
        )

    def to_request_body(self) -> Dict[str, Any]:
        """Body for the capture-csat-response endpoint."""
        return {
            "csat": self.csat_id,
            "user_id": self.user_id,
            "rating": self.rating,
            "feedback_option": self.feedback_option,
            "additional_comments": self.additional_comments,
        }


@dataclass(frozen=True)
class PendingUserAttributes:
    """Latest user-attribute snapshot awaiting sync. Single slot."""

    user_id: str
    attributes: Dict[str, Any]
    timestamp: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "attributes": self.attributes,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingUserAttributes":
        """Create from dictionary."""
        return cls(
            user_id=data["user_id"],
            attributes=dict(data["attributes"]),
            timestamp=_parse_timestamp(data["timestamp"]),
        )
