"""
Result acceptance filter - decides which parsed organizations are kept

A record is useful only when it carries at least one contact channel
(email or phone). The same outcome feeds both the database and the
user-facing summary, so the two counts can never drift apart.
"""
from typing import Any, Dict, Iterator, List, Optional, Tuple
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ParsedRecord:
    """One organization discovered by a parsing task"""
    organization_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    description: Optional[str] = None
    country: Optional[str] = None
    source_url: Optional[str] = None
    all_emails: Tuple[str, ...] = ()
    category_id: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'organization_name': self.organization_name,
            'email': self.email,
            'phone': self.phone,
            'website': self.website,
            'description': self.description,
            'country': self.country,
            'source_url': self.source_url,
            'all_emails': list(self.all_emails),
            'category_id': self.category_id,
        }


@dataclass(frozen=True)
class TaskResultBatch:
    """Flat, ordered records produced by one completed task"""
    task_id: str
    records: Tuple[ParsedRecord, ...] = ()

    def __iter__(self) -> Iterator[ParsedRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class AcceptanceOutcome:
    """Records kept for persistence and reporting, plus what was dropped"""
    accepted: Tuple[ParsedRecord, ...] = ()
    rejected_count: int = 0

    @property
    def accepted_count(self) -> int:
        return len(self.accepted)

    @property
    def total_count(self) -> int:
        return len(self.accepted) + self.rejected_count

    @property
    def is_empty(self) -> bool:
        return self.total_count == 0

    @property
    def no_contacts_found(self) -> bool:
        """Organizations were found but none of them can be contacted"""
        return self.total_count > 0 and not self.accepted


def _present(value: Any) -> bool:
    # Non-string values are malformed and count as missing
    return isinstance(value, str) and value.strip() != ''


def has_contact_channel(record: ParsedRecord) -> bool:
    """True when the record has a usable email or phone"""
    return _present(record.email) or _present(record.phone)


class ResultAcceptanceFilter:
    """Partitions a task batch into accepted records and a rejected count"""

    def apply(self, batch: TaskResultBatch) -> AcceptanceOutcome:
        accepted: List[ParsedRecord] = []
        rejected = 0

        for record in batch:
            if has_contact_channel(record):
                accepted.append(record)
            else:
                rejected += 1

        return AcceptanceOutcome(accepted=tuple(accepted), rejected_count=rejected)
