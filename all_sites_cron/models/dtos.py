"""Data Transfer Objects for run coordination state.

These are plain Python objects that travel between the coordination core,
the shared state store (as JSON) and the HTTP layer.
"""
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
import uuid


@dataclass
class Lock:
    """A held run lock."""
    acquired_at: int
    ttl: int
    owner: Optional[str] = None

    def is_stale(self, now: int) -> bool:
        """A lock older than its TTL is presumed abandoned."""
        return now - self.acquired_at >= self.ttl

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]):
        if not data:
            return None

        return cls(
            acquired_at=int(data.get('acquired_at', 0)),
            ttl=int(data.get('ttl', 0)),
            owner=data.get('owner'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'acquired_at': self.acquired_at,
            'ttl': self.ttl,
            'owner': self.owner,
        }


@dataclass
class SiteRecord:
    """One public site of the network, as returned by a site lister."""
    url: str
    site_id: Optional[int] = None


@dataclass
class DispatchResult:
    """Outcome of one coordinated run."""
    success: bool
    count: int = 0
    errors: List[str] = field(default_factory=list)
    message: str = ''

    @classmethod
    def failure(cls, message: str, count: int = 0, errors: Optional[List[str]] = None):
        return cls(success=False, count=count, errors=errors or [], message=message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'success': self.success,
            'count': self.count,
            'errors': list(self.errors),
            'message': self.message,
        }


@dataclass
class QueueJob:
    """Descriptor of a deferred run waiting in the work queue."""
    enqueued_at: int
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    source: str = 'rest'

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]):
        if not data:
            return None

        return cls(
            enqueued_at=int(data.get('enqueued_at', 0)),
            job_id=data.get('job_id') or uuid.uuid4().hex,
            source=data.get('source', 'rest'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'enqueued_at': self.enqueued_at,
            'job_id': self.job_id,
            'source': self.source,
        }
