"""MIME body-structure tree built from IMAP BODYSTRUCTURE responses.

``imapclient`` hands back BODYSTRUCTURE as nested tuples of ``bytes``,
``int`` and ``None``. :func:`parse_bodystructure` turns that into a tree of
:class:`BodyPart` nodes carrying IMAP part identifiers (``1``, ``1.2``,
``2.1`` ...), which is what ``BODY.PEEK[<part>]`` expects.

Part numbering follows RFC 3501 section 6.4.5: children of a multipart are
numbered from 1 beneath their parent, a single-part message has no
identifier of its own (its content is ``TEXT``), and the body encapsulated
by a ``message/rfc822`` part at ``N`` starts at ``N.1``.
"""

from __future__ import annotations

import base64
import binascii
import logging
import quopri
from collections.abc import Sequence
from dataclasses import dataclass, field
from email.utils import collapse_rfc2231_value, decode_rfc2231
from typing import Any
from urllib.parse import unquote

from ..core.formatting import decode_text
from ..core.models import AttachmentInfo

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class BodyPart:
    """One node of a message's MIME structure."""

    content_type: str
    part: str | None = None
    size: int | None = None
    encoding: str | None = None
    disposition: str | None = None
    disposition_parameters: dict[str, str] = field(default_factory=dict)
    parameters: dict[str, str] = field(default_factory=dict)
    child_nodes: list[BodyPart] = field(default_factory=list)

    @property
    def filename(self) -> str | None:
        """Filename from the disposition, falling back to the type's ``name``."""
        return self.disposition_parameters.get("filename") or self.parameters.get(
            "name"
        )

    @property
    def charset(self) -> str | None:
        return self.parameters.get("charset")


def parse_bodystructure(raw: Sequence[Any]) -> BodyPart:
    """Convert a raw BODYSTRUCTURE response into a :class:`BodyPart` tree."""
    return _parse_node(raw, ())


def find_first_part_of_type(tree: BodyPart | None, content_type: str) -> str | None:
    """Return the identifier of the first leaf part of ``content_type``.

    Depth-first, pre-order: the first matching part in document order wins.
    """
    if tree is None:
        return None
    wanted = content_type.lower()
    if tree.content_type == wanted and tree.part:
        return tree.part
    for child in tree.child_nodes:
        found = find_first_part_of_type(child, wanted)
        if found:
            return found
    return None


def find_part(tree: BodyPart | None, part: str) -> BodyPart | None:
    """Return the node carrying the given part identifier."""
    if tree is None:
        return None
    if tree.part == part:
        return tree
    for child in tree.child_nodes:
        found = find_part(child, part)
        if found is not None:
            return found
    return None


def decode_part_payload(
    payload: bytes, encoding: str | None = None, charset: str | None = None
) -> str:
    """Undo the transfer encoding of a downloaded part and decode its text.

    Unknown charsets fall back to UTF-8; undecodable bytes are replaced.
    """
    data = payload
    if encoding == "base64":
        try:
            data = base64.b64decode(payload)
        except binascii.Error:
            LOGGER.debug("Part declared base64 but did not decode; keeping raw bytes")
    elif encoding == "quoted-printable":
        data = quopri.decodestring(payload)
    try:
        return data.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return data.decode("utf-8", errors="replace")


def collect_attachments(tree: BodyPart | None) -> list[AttachmentInfo]:
    """List attachment-like parts in document order.

    A part qualifies when its disposition is ``attachment``, or when it is
    ``inline`` and names a file. Nameless inline parts such as images
    referenced by an HTML body are left out.
    """
    attachments: list[AttachmentInfo] = []
    if tree is not None:
        _walk_attachments(tree, attachments)
    return attachments


def _walk_attachments(node: BodyPart, accumulator: list[AttachmentInfo]) -> None:
    if _is_attachment(node):
        accumulator.append(
            AttachmentInfo(
                filename=node.filename,
                size=node.size,
                content_type=node.content_type,
            )
        )
    for child in node.child_nodes:
        _walk_attachments(child, accumulator)


def _is_attachment(node: BodyPart) -> bool:
    if node.disposition == "attachment":
        return True
    return node.disposition == "inline" and bool(node.filename)


# Parsing ------------------------------------------------------------------------


def _parse_node(raw: Sequence[Any], path: tuple[int, ...]) -> BodyPart:
    children, rest = _split_multipart(raw)
    if children is not None:
        return _parse_multipart(children, rest, path)
    return _parse_single(raw, path)


def _split_multipart(
    raw: Sequence[Any],
) -> tuple[list[Sequence[Any]] | None, Sequence[Any]]:
    """Separate child bodies from the trailing multipart fields.

    ``imapclient`` groups the children of the top-level body into a list;
    nested multiparts keep them as leading tuples.
    """
    if not raw:
        return None, raw
    head = raw[0]
    if isinstance(head, list):
        return head, raw[1:]
    if not isinstance(head, tuple):
        return None, raw
    children: list[Sequence[Any]] = []
    index = 0
    while index < len(raw) and isinstance(raw[index], (tuple, list)):
        children.append(raw[index])
        index += 1
    return children, raw[index:]


def _parse_multipart(
    children: list[Sequence[Any]], rest: Sequence[Any], path: tuple[int, ...]
) -> BodyPart:
    subtype = _text(_item(rest, 0)) or "mixed"
    disposition, disposition_parameters = _parse_disposition(_item(rest, 2))
    return BodyPart(
        content_type=f"multipart/{subtype.lower()}",
        part=_format_path(path),
        parameters=_parse_parameters(_item(rest, 1)),
        disposition=disposition,
        disposition_parameters=disposition_parameters,
        child_nodes=[
            _parse_node(child, path + (index,))
            for index, child in enumerate(children, start=1)
        ],
    )


def _parse_single(raw: Sequence[Any], path: tuple[int, ...]) -> BodyPart:
    main_type = (_text(_item(raw, 0)) or "text").lower()
    subtype = (_text(_item(raw, 1)) or "plain").lower()
    content_type = f"{main_type}/{subtype}"

    # Extension data sits after the type-specific fields.
    if main_type == "text":
        extension_offset = 8
    elif content_type == "message/rfc822":
        extension_offset = 10
    else:
        extension_offset = 7
    disposition, disposition_parameters = _parse_disposition(
        _item(raw, extension_offset + 1)
    )

    size = _item(raw, 6)
    node = BodyPart(
        content_type=content_type,
        part=_format_path(path),
        size=size if isinstance(size, int) else None,
        encoding=(_text(_item(raw, 5)) or "7bit").lower(),
        parameters=_parse_parameters(_item(raw, 2)),
        disposition=disposition,
        disposition_parameters=disposition_parameters,
    )

    if content_type == "message/rfc822":
        inner = _item(raw, 8)
        if isinstance(inner, (tuple, list)) and inner:
            inner_children, _ = _split_multipart(inner)
            # An encapsulated multipart numbers its children directly beneath
            # the message part; a single-part body is ``<part>.1``.
            inner_path = path if inner_children is not None else path + (1,)
            node.child_nodes.append(_parse_node(inner, inner_path))
    return node


def _parse_disposition(raw: Any) -> tuple[str | None, dict[str, str]]:
    if not isinstance(raw, (tuple, list)) or not raw:
        return None, {}
    value = _text(raw[0])
    parameters = _parse_parameters(raw[1]) if len(raw) > 1 else {}
    return (value.lower() if value else None), parameters


def _parse_parameters(raw: Any) -> dict[str, str]:
    """Turn a flat ``(key, value, key, value ...)`` list into a dict.

    RFC 2231 extended values (``filename*``) are decoded under the plain key.
    """
    if not isinstance(raw, (tuple, list)):
        return {}
    parameters: dict[str, str] = {}
    for key_raw, value_raw in zip(raw[::2], raw[1::2]):
        key = (_text(key_raw) or "").lower()
        value = _text(value_raw)
        if not key or value is None:
            continue
        if key.endswith("*"):
            key = key.rstrip("*").split("*")[0]
            charset, language, encoded = decode_rfc2231(value)
            value = collapse_rfc2231_value(
                (charset, language, unquote(encoded, encoding="latin-1"))
            )
        else:
            value = decode_text(value) or value
        parameters.setdefault(key, value)
    return parameters


def _format_path(path: tuple[int, ...]) -> str | None:
    return ".".join(str(index) for index in path) if path else None


def _item(raw: Sequence[Any], index: int) -> Any:
    return raw[index] if len(raw) > index else None


def _text(value: Any) -> str | None:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        return value
    return None


__all__ = [
    "BodyPart",
    "collect_attachments",
    "decode_part_payload",
    "find_first_part_of_type",
    "find_part",
    "parse_bodystructure",
]
