"""IMAP transport adapter providing mailbox access."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from types import TracebackType
from typing import Any

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError

from ..core.config import ImapSettings
from ..core.errors import ImapError, MailConnectionError, NotFoundError, OperationError
from ..core.formatting import (
    decode_text,
    format_addresses,
    normalize_flags,
    parse_search_date,
    serialize_datetime,
)
from ..core.models import (
    DeleteResult,
    EmailPage,
    MailboxDescriptor,
    MessageDetail,
    MessageSummary,
    MoveResult,
    SearchCriteria,
)
from .bodystructure import (
    BodyPart,
    collect_attachments,
    decode_part_payload,
    find_first_part_of_type,
    find_part,
    parse_bodystructure,
)
from .pagination import compute_page_window
from .tls import create_ssl_context

LOGGER = logging.getLogger(__name__)

ConnectionFactory = Callable[[ImapSettings, float], IMAPClient]

SUMMARY_ITEMS = ["UID", "FLAGS", "ENVELOPE"]
DETAIL_ITEMS = ["UID", "FLAGS", "ENVELOPE", "BODYSTRUCTURE"]

# RFC 6154 / RFC 8457 mailbox attributes reported as ``specialUse``.
SPECIAL_USE_FLAGS = frozenset(
    {
        "\\all",
        "\\archive",
        "\\drafts",
        "\\flagged",
        "\\important",
        "\\junk",
        "\\sent",
        "\\trash",
    }
)


def open_imap_connection(settings: ImapSettings, timeout: float) -> IMAPClient:
    """Open a socket to the IMAP server using the configured security mode.

    Timestamps keep the offset the server reported instead of being shifted
    to naive local time.
    """
    if settings.security == "ssl":
        LOGGER.debug(
            "Connecting to IMAP host %s:%s via SSL", settings.host, settings.port
        )
        connection = IMAPClient(
            settings.host,
            port=settings.port,
            ssl=True,
            ssl_context=create_ssl_context(settings.verify_certificates),
            timeout=timeout,
        )
        connection.normalise_times = False
        return connection

    LOGGER.debug(
        "Connecting to IMAP host %s:%s without SSL", settings.host, settings.port
    )
    connection = IMAPClient(
        settings.host, port=settings.port, ssl=False, timeout=timeout
    )
    connection.normalise_times = False
    if settings.security == "starttls":
        LOGGER.debug("Upgrading IMAP connection with STARTTLS")
        try:
            connection.starttls(create_ssl_context(settings.verify_certificates))
        except (IMAPClientError, OSError):
            _shutdown_quietly(connection)
            raise
    return connection


class ImapClient:
    """Single-operation IMAP session built on ``imapclient``.

    Entering the context connects and authenticates; leaving it always logs
    out and closes the socket, whatever happened inside. Sessions are not
    meant to be reused across operations.

    Example:
        >>> with ImapClient(settings.imap) as client:
        ...     page = client.list_emails("INBOX", page=1, page_size=20)
    """

    def __init__(
        self,
        settings: ImapSettings,
        *,
        timeout: float = 30.0,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        """Initialise the client with connection settings."""
        self._settings = settings
        self._timeout = timeout
        self._connection_factory = connection_factory or open_imap_connection
        self._connection: IMAPClient | None = None

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> ImapClient:
        """Connect on entering a context manager scope."""
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Ensure resources are released on context exit."""
        self.close()

    # Session lifecycle --------------------------------------------------------
    def connect(self) -> None:
        """Establish the IMAP connection and authenticate."""
        if self._connection is not None:
            return

        try:
            connection = self._connection_factory(self._settings, self._timeout)
        except (IMAPClientError, OSError) as exc:
            raise MailConnectionError(
                f"Failed to connect to IMAP server {self._settings.host}:"
                f"{self._settings.port}: {exc}"
            ) from exc

        if self._settings.requires_login:
            LOGGER.debug("Authenticating as %s", self._settings.username)
            try:
                connection.login(self._settings.username, self._settings.password)
            except (IMAPClientError, OSError) as exc:
                _shutdown_quietly(connection)
                raise MailConnectionError(f"IMAP authentication failed: {exc}") from exc
        self._connection = connection

    def close(self) -> None:
        """Terminate the IMAP session; failures here never propagate."""
        if self._connection is None:
            return
        connection = self._connection
        self._connection = None
        try:
            LOGGER.debug("Logging out of IMAP session")
            connection.logout()
        except (IMAPClientError, OSError) as exc:
            LOGGER.debug("IMAP logout raised %s; closing the socket", exc)
            _shutdown_quietly(connection)

    # Public API ---------------------------------------------------------------
    def list_mailboxes(self) -> list[MailboxDescriptor]:
        """Return every mailbox visible to the account."""
        connection = self._require_connection()
        with _protocol_errors("Listing mailboxes"):
            folders = connection.list_folders()
        return [
            _to_mailbox(flags, delimiter, name) for flags, delimiter, name in folders
        ]

    def list_emails(
        self, mailbox: str, page: int = 1, page_size: int = 20
    ) -> EmailPage:
        """Return one newest-first page of message summaries."""
        connection = self._require_connection()
        total = self._select(mailbox, readonly=True)
        window = compute_page_window(total, page, page_size)
        if window is None:
            LOGGER.debug(
                "Page %s of %s (size %s) is empty for %s messages",
                page,
                mailbox,
                page_size,
                total,
            )
            return EmailPage(total=total, page=page, page_size=page_size, emails=[])

        message_set = window.as_message_set()
        LOGGER.debug("Fetching sequence window %s of %s", message_set, mailbox)
        with _protocol_errors(f"Fetching messages from '{mailbox}'"):
            with _sequence_mode(connection):
                response = connection.fetch(message_set, SUMMARY_ITEMS)
        emails = _newest_first(_to_summary(data) for data in response.values())
        return EmailPage(total=total, page=page, page_size=page_size, emails=emails)

    def fetch_email(self, mailbox: str, uid: int) -> MessageDetail:
        """Return a message with decoded bodies and attachment metadata."""
        connection = self._require_connection()
        self._select(mailbox, readonly=True)
        with _protocol_errors(f"Fetching UID {uid}"):
            response = connection.fetch([uid], DETAIL_ITEMS)
        data = response.get(uid)
        if data is None:
            raise NotFoundError(f"Message with UID {uid} not found")

        raw_structure = data.get(b"BODYSTRUCTURE")
        structure = parse_bodystructure(raw_structure) if raw_structure else None
        text_part = find_first_part_of_type(structure, "text/plain")
        html_part = find_first_part_of_type(structure, "text/html")

        text_body = self._download(uid, text_part, structure) if text_part else None
        html_body = self._download(uid, html_part, structure) if html_part else None

        if not text_part and not html_part and (
            structure is None or not structure.child_nodes
        ):
            LOGGER.debug("UID %s has no located text part; downloading whole body", uid)
            whole = self._download(uid, "TEXT", structure)
            if structure is not None and structure.content_type == "text/html":
                html_body = whole
            else:
                text_body = whole

        envelope = data.get(b"ENVELOPE")
        return MessageDetail(
            uid=int(data.get(b"UID", uid)),
            date=serialize_datetime(getattr(envelope, "date", None)),
            from_=format_addresses(getattr(envelope, "from_", None)),
            to=format_addresses(getattr(envelope, "to", None)),
            cc=format_addresses(getattr(envelope, "cc", None)),
            subject=decode_text(getattr(envelope, "subject", None)),
            flags=normalize_flags(data.get(b"FLAGS")),
            text_body=text_body,
            html_body=html_body,
            attachments=collect_attachments(structure),
        )

    def search_emails(
        self, mailbox: str, criteria: SearchCriteria, limit: int = 50
    ) -> list[MessageSummary]:
        """Return summaries of the most recent ``limit`` matching messages."""
        if limit < 1:
            raise ValueError("limit must be at least 1")
        connection = self._require_connection()
        self._select(mailbox, readonly=True)

        keys = build_search_keys(criteria)
        charset = None if _is_ascii(keys) else "UTF-8"
        LOGGER.debug("Searching %s with %s", mailbox, keys)
        with _protocol_errors(f"Searching '{mailbox}'"):
            found = list(connection.search(keys, charset))
        if not found:
            return []

        uids = sorted(found)
        if uids != found:
            LOGGER.warning(
                "Server returned search results for %s out of UID order; re-sorted",
                mailbox,
            )
        # UIDs grow with arrival, so the tail holds the newest matches.
        selected = uids[-limit:]
        with _protocol_errors(f"Fetching search results from '{mailbox}'"):
            response = connection.fetch(selected, SUMMARY_ITEMS)
        return _newest_first(_to_summary(data) for data in response.values())

    def move_email(self, mailbox: str, uid: int, destination: str) -> MoveResult:
        """Move a message and report its UID in the destination when known."""
        connection = self._require_connection()
        self._select(mailbox, readonly=False)
        failure = f"Failed to move message UID {uid} to {destination}"

        with _protocol_errors(failure, OperationError):
            if uid not in connection.fetch([uid], ["UID"]):
                raise OperationError(f"{failure}: message not found in '{mailbox}'")
            _take_copyuid(connection)
            if connection.has_capability("MOVE"):
                LOGGER.debug("Moving UID %s from %s to %s", uid, mailbox, destination)
                connection.move([uid], destination)
            else:
                LOGGER.debug("Server lacks MOVE; copying UID %s then expunging", uid)
                connection.copy([uid], destination)
                connection.delete_messages([uid])
                self._expunge(uid)
            copyuid = _take_copyuid(connection)

        new_uid = _map_copied_uid(copyuid, uid)
        if new_uid is None:
            LOGGER.debug("Server did not report a destination UID for %s", uid)
        return MoveResult(
            uid=uid,
            source_mailbox=mailbox,
            destination_mailbox=destination,
            new_uid=new_uid,
        )

    def delete_email(self, mailbox: str, uid: int) -> DeleteResult:
        """Flag a message ``\\Deleted`` and expunge it permanently."""
        connection = self._require_connection()
        self._select(mailbox, readonly=False)
        with _protocol_errors(f"Deleting UID {uid}"):
            LOGGER.debug("Marking UID %s for deletion", uid)
            flagged = connection.delete_messages([uid])
            if uid not in flagged:
                LOGGER.debug("UID %s not in %s; nothing to expunge", uid, mailbox)
                return DeleteResult(uid=uid, mailbox=mailbox, deleted=False)
            self._expunge(uid)
        return DeleteResult(uid=uid, mailbox=mailbox, deleted=True)

    # Internal helpers ---------------------------------------------------------
    def _require_connection(self) -> IMAPClient:
        if self._connection is None:
            raise ImapError("IMAP connection has not been established")
        return self._connection

    def _select(self, mailbox: str, *, readonly: bool) -> int:
        """Select ``mailbox`` and return its message count."""
        connection = self._require_connection()
        with _protocol_errors(f"Unable to select mailbox '{mailbox}'"):
            response = connection.select_folder(mailbox, readonly=readonly)
        return int(response.get(b"EXISTS", 0))

    def _download(
        self, uid: int, section: str, structure: BodyPart | None
    ) -> str | None:
        """Fetch one body section and decode it to text."""
        connection = self._require_connection()
        with _protocol_errors(f"Downloading section {section} of UID {uid}"):
            response = connection.fetch([uid], [f"BODY.PEEK[{section}]"])
        payload = response.get(uid, {}).get(f"BODY[{section}]".encode())
        if payload is None:
            LOGGER.warning("No content returned for UID %s section %s", uid, section)
            return None
        node = structure if section == "TEXT" else find_part(structure, section)
        return decode_part_payload(
            payload,
            encoding=node.encoding if node else None,
            charset=node.charset if node else None,
        )

    def _expunge(self, uid: int) -> None:
        connection = self._require_connection()
        if connection.has_capability("UIDPLUS"):
            connection.uid_expunge([uid])
        else:
            LOGGER.debug("Server lacks UIDPLUS; expunging the whole mailbox")
            connection.expunge()


def build_search_keys(criteria: SearchCriteria) -> list[Any]:
    """Translate search criteria into IMAP SEARCH keys; all keys are ANDed."""
    keys: list[Any] = []
    if criteria.from_:
        keys += ["FROM", criteria.from_]
    if criteria.to:
        keys += ["TO", criteria.to]
    if criteria.subject:
        keys += ["SUBJECT", criteria.subject]
    if criteria.since:
        keys += ["SINCE", parse_search_date(criteria.since)]
    if criteria.before:
        keys += ["BEFORE", parse_search_date(criteria.before)]
    if criteria.body:
        keys += ["BODY", criteria.body]
    if criteria.seen is not None:
        keys.append("SEEN" if criteria.seen else "UNSEEN")
    return keys or ["ALL"]


@contextmanager
def _protocol_errors(
    action: str, error_type: type[ImapError] = ImapError
) -> Iterator[None]:
    """Re-raise engine failures as ``error_type`` with context."""
    try:
        yield
    except (IMAPClientError, OSError) as exc:
        raise error_type(f"{action}: {exc}") from exc


@contextmanager
def _sequence_mode(connection: IMAPClient) -> Iterator[None]:
    """Temporarily address messages by sequence number instead of UID."""
    previous = connection.use_uid
    connection.use_uid = False
    try:
        yield
    finally:
        connection.use_uid = previous


def _shutdown_quietly(connection: IMAPClient) -> None:
    try:
        connection.shutdown()
    except (IMAPClientError, OSError) as exc:
        LOGGER.debug("IMAP socket shutdown raised %s; ignoring", exc)


def _take_copyuid(connection: IMAPClient) -> list[bytes]:
    """Pop COPYUID response codes recorded by the underlying ``imaplib`` object.

    ``imapclient`` does not surface response codes, but ``imaplib`` files
    bracketed codes such as ``[COPYUID ...]`` under ``untagged_responses``.
    """
    imap = getattr(connection, "_imap", None)
    responses = getattr(imap, "untagged_responses", None)
    if not isinstance(responses, dict):
        return []
    return list(responses.pop("COPYUID", None) or [])


def _map_copied_uid(copyuid: Iterable[bytes | str], uid: int) -> int | None:
    """Find ``uid`` in UIDPLUS ``uidvalidity source-set dest-set`` data."""
    for entry in copyuid:
        text = entry.decode("ascii", "replace") if isinstance(entry, bytes) else entry
        fields = text.split()
        if len(fields) != 3:
            continue
        try:
            mapping = dict(zip(_expand_uid_set(fields[1]), _expand_uid_set(fields[2])))
        except ValueError:
            LOGGER.debug("Ignoring malformed COPYUID data %r", text)
            continue
        if uid in mapping:
            return mapping[uid]
    return None


def _expand_uid_set(text: str) -> list[int]:
    """Expand ``4,7:9`` into ``[4, 7, 8, 9]`` keeping the declared order."""
    uids: list[int] = []
    for chunk in text.split(","):
        if ":" in chunk:
            first, last = (int(value) for value in chunk.split(":", 1))
            step = 1 if last >= first else -1
            uids.extend(range(first, last + step, step))
        else:
            uids.append(int(chunk))
    return uids


def _to_mailbox(
    flags: Iterable[bytes], delimiter: bytes | str | None, name: str
) -> MailboxDescriptor:
    flag_list = normalize_flags(flags)
    delimiter_text = decode_text(delimiter)
    path = decode_text(name) or ""
    display_name = path.rsplit(delimiter_text, 1)[-1] if delimiter_text else path
    special_use = next(
        (flag for flag in flag_list if flag.lower() in SPECIAL_USE_FLAGS), None
    )
    if special_use is None and path.upper() == "INBOX":
        special_use = "\\Inbox"
    return MailboxDescriptor(
        name=display_name,
        path=path,
        delimiter=delimiter_text,
        flags=flag_list,
        special_use=special_use,
    )


def _to_summary(data: dict[bytes, Any]) -> MessageSummary:
    envelope = data.get(b"ENVELOPE")
    return MessageSummary(
        uid=int(data[b"UID"]),
        date=serialize_datetime(getattr(envelope, "date", None)),
        from_=format_addresses(getattr(envelope, "from_", None)),
        to=format_addresses(getattr(envelope, "to", None)),
        subject=decode_text(getattr(envelope, "subject", None)),
        flags=normalize_flags(data.get(b"FLAGS")),
    )


def _newest_first(summaries: Iterable[MessageSummary]) -> list[MessageSummary]:
    return sorted(summaries, key=lambda summary: summary.uid, reverse=True)


def _is_ascii(keys: Iterable[Any]) -> bool:
    return all(not isinstance(key, str) or key.isascii() for key in keys)


__all__ = [
    "ImapClient",
    "ImapError",
    "build_search_keys",
    "open_imap_connection",
]
