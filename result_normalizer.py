"""
Normalizes raw task output into a flat TaskResultBatch
"""
import logging
from typing import Any, Dict, List

from result_filter import ParsedRecord, TaskResultBatch

logger = logging.getLogger(__name__)

UNKNOWN_ORGANIZATION = 'Unknown Organization'

# First non-empty alias wins
FIELD_ALIASES = {
    'organization_name': ['organizationName', 'organization_name', 'title', 'name'],
    'email': ['email'],
    'phone': ['phone'],
    'website': ['website'],
    'description': ['description'],
    'country': ['country'],
    'source_url': ['url', 'source_url', 'sourceUrl'],
    'all_emails': ['allEmails', 'all_emails'],
    'category_id': ['categoryId', 'category_id'],
}

_KNOWN_KEYS = {alias for aliases in FIELD_ALIASES.values() for alias in aliases}


def _pick(item: Dict[str, Any], field_name: str) -> Any:
    for alias in FIELD_ALIASES[field_name]:
        value = item.get(alias)
        if value is not None and value != '':
            return value
    return None


def _flatten(raw: Any) -> List[Any]:
    """Unwrap {'results': [...]} and {'results': {'results': [...]}} shapes"""
    while isinstance(raw, dict):
        if 'results' not in raw:
            # A single record on its own
            return [raw]
        raw = raw['results']

    if raw is None:
        return []

    if isinstance(raw, (list, tuple)):
        return list(raw)

    raise ValueError(f"Unsupported task results shape: {type(raw).__name__}")


def parse_record(item: Dict[str, Any]) -> ParsedRecord:
    """Map one raw result dict onto a ParsedRecord"""
    name = _pick(item, 'organization_name')
    if not isinstance(name, str) or not name.strip():
        name = UNKNOWN_ORGANIZATION

    all_emails = _pick(item, 'all_emails') or ()
    if isinstance(all_emails, str):
        all_emails = (all_emails,)
    elif isinstance(all_emails, (list, tuple)):
        all_emails = tuple(e for e in all_emails if isinstance(e, str))
    else:
        all_emails = ()

    category_id = _pick(item, 'category_id')
    if not isinstance(category_id, int) or isinstance(category_id, bool):
        category_id = None

    return ParsedRecord(
        organization_name=name.strip(),
        email=_pick(item, 'email'),
        phone=_pick(item, 'phone'),
        website=_pick(item, 'website'),
        description=_pick(item, 'description'),
        country=_pick(item, 'country'),
        source_url=_pick(item, 'source_url'),
        all_emails=all_emails,
        category_id=category_id,
        extra={k: v for k, v in item.items() if k not in _KNOWN_KEYS},
    )


def normalize_task_results(raw: Any, task_id: str) -> TaskResultBatch:
    """Build a flat batch from whatever shape the parsing pipeline produced"""
    items = _flatten(raw)

    records = []
    skipped = 0
    for item in items:
        if not isinstance(item, dict):
            skipped += 1
            continue
        records.append(parse_record(item))

    if skipped:
        logger.warning(f"Task {task_id}: skipped {skipped} non-object result entries")

    return TaskResultBatch(task_id=task_id, records=tuple(records))
