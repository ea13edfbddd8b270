"""Core domain models returned by the mailbox and relay clients."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class MailboxDescriptor:
    """A folder reported by the mailbox listing."""

    name: str
    path: str
    delimiter: str | None
    flags: list[str]
    special_use: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "path": self.path,
            "delimiter": self.delimiter,
            "flags": list(self.flags),
        }
        if self.special_use is not None:
            payload["specialUse"] = self.special_use
        return payload


@dataclass(slots=True)
class AttachmentInfo:
    """Metadata describing an email attachment."""

    filename: str | None
    size: int | None
    content_type: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "size": self.size,
            "contentType": self.content_type,
        }


@dataclass(slots=True)
class MessageSummary:
    """Envelope-level view of a message used by listings and searches."""

    uid: int
    date: str | None
    from_: list[str] | None
    to: list[str] | None
    subject: str | None
    flags: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "date": self.date,
            "from": self.from_,
            "to": self.to,
            "subject": self.subject,
            "flags": list(self.flags),
        }


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class MessageDetail:
    """Full message view with decoded bodies and attachment metadata."""

    uid: int
    date: str | None
    from_: list[str] | None
    to: list[str] | None
    cc: list[str] | None
    subject: str | None
    flags: list[str]
    text_body: str | None = None
    html_body: str | None = None
    attachments: list[AttachmentInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "date": self.date,
            "from": self.from_,
            "to": self.to,
            "cc": self.cc,
            "subject": self.subject,
            "flags": list(self.flags),
            "textBody": self.text_body,
            "htmlBody": self.html_body,
            "attachments": [attachment.to_dict() for attachment in self.attachments],
        }


@dataclass(slots=True)
class EmailPage:
    """One newest-first page of a mailbox listing."""

    total: int
    page: int
    page_size: int
    emails: list[MessageSummary]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "page": self.page,
            "pageSize": self.page_size,
            "emails": [email.to_dict() for email in self.emails],
        }


@dataclass(slots=True)
class SearchCriteria:
    """Optional search constraints; present fields are ANDed together."""

    from_: str | None = None
    to: str | None = None
    subject: str | None = None
    since: str | None = None
    before: str | None = None
    body: str | None = None
    seen: bool | None = None


@dataclass(slots=True)
class MoveResult:
    """Outcome of relocating a message to another mailbox."""

    uid: int
    source_mailbox: str
    destination_mailbox: str
    new_uid: int | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "uid": self.uid,
            "from": self.source_mailbox,
            "to": self.destination_mailbox,
        }
        if self.new_uid is not None:
            payload["newUid"] = self.new_uid
        return payload


@dataclass(slots=True)
class DeleteResult:
    """Outcome of permanently removing a message."""

    uid: int
    mailbox: str
    deleted: bool

    def to_dict(self) -> dict[str, Any]:
        return {"uid": self.uid, "mailbox": self.mailbox, "deleted": self.deleted}


@dataclass(slots=True)
class SendResult:
    """Relay verdict for an outgoing message."""

    message_id: str
    accepted: list[str]
    rejected: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "messageId": self.message_id,
            "accepted": list(self.accepted),
            "rejected": list(self.rejected),
        }


__all__ = [
    "AttachmentInfo",
    "DeleteResult",
    "EmailPage",
    "MailboxDescriptor",
    "MessageDetail",
    "MessageSummary",
    "MoveResult",
    "SearchCriteria",
    "SendResult",
]
