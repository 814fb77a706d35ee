"""Basic Encoding Rules (BER) packets: building, encoding and decoding."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class BerClass(enum.IntEnum):
    """The class bits of a BER identifier octet."""

    UNIVERSAL = 0x00
    APPLICATION = 0x40
    CONTEXT = 0x80
    PRIVATE = 0xC0


class TagType(enum.IntEnum):
    """Whether a BER element is primitive or constructed."""

    PRIMITIVE = 0x00
    CONSTRUCTED = 0x20


class Tag(enum.IntEnum):
    """Universal tag numbers."""

    EOC = 0
    BOOLEAN = 1
    INTEGER = 2
    BIT_STRING = 3
    OCTET_STRING = 4
    NULL = 5
    OBJECT_IDENTIFIER = 6
    OBJECT_DESCRIPTOR = 7
    EXTERNAL = 8
    REAL_FLOAT = 9
    ENUMERATED = 10
    EMBEDDED_PDV = 11
    UTF8_STRING = 12
    RELATIVE_OID = 13
    SEQUENCE = 16
    SET = 17
    NUMERIC_STRING = 18
    PRINTABLE_STRING = 19
    T61_STRING = 20
    VIDEOTEX_STRING = 21
    IA5_STRING = 22
    UTC_TIME = 23
    GENERALIZED_TIME = 24
    GRAPHIC_STRING = 25
    VISIBLE_STRING = 26
    GENERAL_STRING = 27
    UNIVERSAL_STRING = 28
    CHARACTER_STRING = 29
    BMP_STRING = 30


_STRING_TAGS = frozenset(
    {
        Tag.OCTET_STRING,
        Tag.UTF8_STRING,
        Tag.NUMERIC_STRING,
        Tag.PRINTABLE_STRING,
        Tag.T61_STRING,
        Tag.VIDEOTEX_STRING,
        Tag.IA5_STRING,
        Tag.UTC_TIME,
        Tag.GENERALIZED_TIME,
        Tag.GRAPHIC_STRING,
        Tag.VISIBLE_STRING,
        Tag.GENERAL_STRING,
        Tag.UNIVERSAL_STRING,
        Tag.CHARACTER_STRING,
        Tag.BMP_STRING,
    }
)


@dataclass
class Packet:
    """A BER element; primitive elements carry ``data``, constructed ones ``children``."""

    class_type: BerClass = BerClass.UNIVERSAL
    tag_type: TagType = TagType.PRIMITIVE
    tag: int = 0
    value: Any = None
    description: str = ""
    data: bytes = b""
    byte_value: bytes | None = None
    children: list[Packet | None] = field(default_factory=list)

    def append_child(self, child: Packet) -> None:
        """Add a child element at the end."""
        self.children.append(child)

    def encode(self) -> bytes:
        """Return the definite-length BER encoding of this element."""
        if self.tag_type == TagType.CONSTRUCTED:
            content = b"".join(
                child.encode() for child in self.children if child is not None
            )
        else:
            content = self.data
        return (
            _encode_identifier(self.class_type, self.tag_type, self.tag)
            + _encode_length(len(content))
            + content
        )


def _encode_identifier(class_type: int, tag_type: int, tag: int) -> bytes:
    if tag < 0:
        raise ValueError(f"ber: invalid negative tag {tag}")
    first = int(class_type) | int(tag_type)
    if tag < 0x1F:
        return bytes([first | tag])
    parts = [tag & 0x7F]
    tag >>= 7
    while tag:
        parts.append(0x80 | (tag & 0x7F))
        tag >>= 7
    return bytes([first | 0x1F, *reversed(parts)])


def _encode_length(length: int) -> bytes:
    if length < 0x80:
        return bytes([length])
    body = length.to_bytes((length.bit_length() + 7) // 8, "big")
    return bytes([0x80 | len(body)]) + body


def _encode_integer(value: int) -> bytes:
    size = ((~value if value < 0 else value).bit_length() // 8) + 1
    return value.to_bytes(size, "big", signed=True)


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return value.encode("utf-8", "surrogateescape")


def _to_text(data: bytes) -> str:
    return data.decode("utf-8", "surrogateescape")


def new_string(
    class_type: BerClass,
    tag_type: TagType,
    tag: int,
    value: str | bytes,
    description: str,
) -> Packet:
    """Build a primitive element holding a string (text or raw bytes)."""
    data = _to_bytes(value)
    return Packet(
        class_type=class_type,
        tag_type=tag_type,
        tag=tag,
        value=_to_text(data),
        description=description,
        data=data,
        byte_value=data,
    )


def new_integer(
    class_type: BerClass, tag_type: TagType, tag: int, value: int, description: str
) -> Packet:
    """Build a primitive element holding a two's-complement integer."""
    number = int(value)
    return Packet(
        class_type=class_type,
        tag_type=tag_type,
        tag=tag,
        value=number,
        description=description,
        data=_encode_integer(number),
    )


def new_boolean(
    class_type: BerClass, tag_type: TagType, tag: int, value: bool, description: str
) -> Packet:
    """Build a primitive element holding a boolean (true is encoded as 1)."""
    flag = bool(value)
    return Packet(
        class_type=class_type,
        tag_type=tag_type,
        tag=tag,
        value=flag,
        description=description,
        data=b"\x01" if flag else b"\x00",
    )


def new_constructed(class_type: BerClass, tag: int, description: str) -> Packet:
    """Build an empty constructed element."""
    return Packet(
        class_type=class_type,
        tag_type=TagType.CONSTRUCTED,
        tag=tag,
        description=description,
    )


def new_sequence(description: str) -> Packet:
    """Build an empty universal SEQUENCE."""
    return new_constructed(BerClass.UNIVERSAL, Tag.SEQUENCE, description)


def _decode_value(packet: Packet, content: bytes) -> Any:
    if packet.class_type != BerClass.UNIVERSAL:
        return None
    tag = packet.tag
    if tag == Tag.BOOLEAN:
        return any(content)
    if tag in (Tag.INTEGER, Tag.ENUMERATED):
        if not content:
            raise ValueError("ber: empty integer content")
        return int.from_bytes(content, "big", signed=True)
    if tag in _STRING_TAGS:
        return _to_text(content)
    return None


def _read_length(buf: bytes, pos: int, end: int) -> tuple[int | None, int]:
    if pos >= end:
        raise ValueError("ber: unexpected end of data reading length")
    first = buf[pos]
    pos += 1
    if first < 0x80:
        return first, pos
    if first == 0x80:
        return None, pos
    count = first & 0x7F
    if count == 0x7F:
        raise ValueError("ber: reserved length octet")
    if pos + count > end:
        raise ValueError("ber: unexpected end of data reading length")
    return int.from_bytes(buf[pos : pos + count], "big"), pos + count


def _read_packet(buf: bytes, pos: int, end: int) -> tuple[Packet, int]:
    if pos >= end:
        raise ValueError("ber: unexpected end of data")
    first = buf[pos]
    pos += 1
    class_type = BerClass(first & 0xC0)
    tag_type = TagType(first & 0x20)
    tag = first & 0x1F
    if tag == 0x1F:
        tag = 0
        while True:
            if pos >= end:
                raise ValueError("ber: unexpected end of data reading tag")
            octet = buf[pos]
            pos += 1
            tag = (tag << 7) | (octet & 0x7F)
            if not octet & 0x80:
                break

    length, pos = _read_length(buf, pos, end)
    packet = Packet(class_type=class_type, tag_type=tag_type, tag=tag)

    if length is None:
        if tag_type != TagType.CONSTRUCTED:
            raise ValueError("ber: indefinite length on a primitive element")
        while True:
            if pos + 2 > end:
                raise ValueError("ber: missing end-of-contents marker")
            if buf[pos : pos + 2] == b"\x00\x00":
                return packet, pos + 2
            child, pos = _read_packet(buf, pos, end)
            packet.children.append(child)

    content_end = pos + length
    if content_end > end:
        raise ValueError("ber: element length exceeds available data")

    if tag_type == TagType.CONSTRUCTED:
        while pos < content_end:
            child, pos = _read_packet(buf, pos, content_end)
            packet.children.append(child)
    else:
        content = bytes(buf[pos:content_end])
        packet.data = content
        packet.byte_value = content
        packet.value = _decode_value(packet, content)
    return packet, content_end


def decode_packet(data: bytes) -> Packet:
    """Decode the first BER element in ``data``; raises ValueError when malformed."""
    buf = bytes(data)
    packet, _ = _read_packet(buf, 0, len(buf))
    return packet