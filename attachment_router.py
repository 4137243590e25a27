"""
Email attachment routing - inline attachment or Google Drive link

Gmail rejects messages over 25MB, so anything that would push the inline
total past the limit is sent as a Drive link instead. Files that were
already uploaded to Drive are always linked.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

GMAIL_ATTACHMENT_LIMIT = 25 * 1024 * 1024


class AttachmentRoute(str, Enum):
    INLINE = 'inline'
    DRIVE_LINK = 'drive_link'


class RoutingReason(str, Enum):
    WITHIN_LIMIT = 'within_limit'
    LARGE_FILE = 'large_file'
    CUMULATIVE_SIZE = 'cumulative_size'
    PRE_UPLOADED = 'pre_uploaded'


@dataclass
class AttachmentFile:
    """A file the user attached to an email campaign"""
    name: str
    size: int
    mime_type: str = ''
    drive_file_id: Optional[str] = None
    upload_status: str = 'pending'  # pending, uploading, uploaded, failed
    permission_status: Optional[str] = None  # pending, granted

    def __post_init__(self):
        if self.size < 0:
            raise ValueError(f"Attachment size cannot be negative: {self.name}")


@dataclass
class RoutedAttachment:
    file: AttachmentFile
    route: AttachmentRoute
    reason: RoutingReason

    @property
    def needs_permission_setup(self) -> bool:
        return self.route == AttachmentRoute.DRIVE_LINK and self.file.permission_status != 'granted'


@dataclass
class AttachmentPlan:
    """Routing decision for every attachment, in the order they were added"""
    routed: List[RoutedAttachment] = field(default_factory=list)
    limit: int = GMAIL_ATTACHMENT_LIMIT

    @property
    def inline(self) -> List[AttachmentFile]:
        return [r.file for r in self.routed if r.route == AttachmentRoute.INLINE]

    @property
    def drive_links(self) -> List[AttachmentFile]:
        return [r.file for r in self.routed if r.route == AttachmentRoute.DRIVE_LINK]

    @property
    def inline_size(self) -> int:
        return sum(f.size for f in self.inline)


def format_file_size(size: int) -> str:
    """Human readable file size"""
    for unit in ('B', 'KB', 'MB'):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == 'B' else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def plan_attachments(files: Iterable[AttachmentFile],
                     limit: int = GMAIL_ATTACHMENT_LIMIT) -> AttachmentPlan:
    """Decide, file by file, whether it travels inline or as a Drive link"""
    plan = AttachmentPlan(limit=limit)
    cumulative = 0

    for attachment in files:
        if attachment.drive_file_id:
            route, reason = AttachmentRoute.DRIVE_LINK, RoutingReason.PRE_UPLOADED
        elif attachment.size > limit:
            route, reason = AttachmentRoute.DRIVE_LINK, RoutingReason.LARGE_FILE
        elif cumulative + attachment.size > limit:
            route, reason = AttachmentRoute.DRIVE_LINK, RoutingReason.CUMULATIVE_SIZE
            logger.info(
                f"{attachment.name} ({format_file_size(attachment.size)}) routed to Google Drive: "
                f"{format_file_size(cumulative)} already inline"
            )
        else:
            route, reason = AttachmentRoute.INLINE, RoutingReason.WITHIN_LIMIT
            cumulative += attachment.size

        plan.routed.append(RoutedAttachment(file=attachment, route=route, reason=reason))

    return plan


def validate_attachment_plan(plan: AttachmentPlan) -> List[str]:
    """Problems that block sending; an empty list means the email can go out"""
    problems = []

    uploading = [r.file.name for r in plan.routed if r.file.upload_status in ('pending', 'uploading')]
    if uploading:
        problems.append(f"Waiting for {len(uploading)} file(s) to finish uploading: {', '.join(uploading)}")

    failed = [r.file.name for r in plan.routed if r.file.upload_status == 'failed']
    if failed:
        problems.append(f"Upload failed for: {', '.join(failed)}")

    permissions = [r.file.name for r in plan.routed if r.needs_permission_setup]
    if permissions:
        problems.append(f"Set Google Drive permissions for {len(permissions)} file(s): {', '.join(permissions)}")

    return problems
