"""Compiling LDAP search filter strings to BER packets and back (RFC 4515)."""

from __future__ import annotations

import enum

from .ber import BerClass, Packet, Tag, TagType, new_boolean, new_constructed, new_string
from .errors import LDAPError, ResultCode, new_error

__all__ = [
    "FilterChoice",
    "SubstringChoice",
    "MatchingRuleAssertion",
    "compile_filter",
    "decompile_filter",
    "escape_filter",
    "decode_escaped_symbols",
]


class FilterChoice(enum.IntEnum):
    """Context tags of the Filter CHOICE."""

    AND = 0
    OR = 1
    NOT = 2
    EQUALITY_MATCH = 3
    SUBSTRINGS = 4
    GREATER_OR_EQUAL = 5
    LESS_OR_EQUAL = 6
    PRESENT = 7
    APPROX_MATCH = 8
    EXTENSIBLE_MATCH = 9

    @property
    def description(self) -> str:
        """Human readable name of the filter choice."""
        return _FILTER_DESCRIPTIONS[self]


_FILTER_DESCRIPTIONS = {
    FilterChoice.AND: "And",
    FilterChoice.OR: "Or",
    FilterChoice.NOT: "Not",
    FilterChoice.EQUALITY_MATCH: "Equality Match",
    FilterChoice.SUBSTRINGS: "Substrings",
    FilterChoice.GREATER_OR_EQUAL: "Greater Or Equal",
    FilterChoice.LESS_OR_EQUAL: "Less Or Equal",
    FilterChoice.PRESENT: "Present",
    FilterChoice.APPROX_MATCH: "Approx Match",
    FilterChoice.EXTENSIBLE_MATCH: "Extensible Match",
}


class SubstringChoice(enum.IntEnum):
    """Context tags of the parts of a SubstringFilter."""

    INITIAL = 0
    ANY = 1
    FINAL = 2

    @property
    def description(self) -> str:
        """Human readable name of the substring part."""
        return _SUBSTRING_DESCRIPTIONS[self]


_SUBSTRING_DESCRIPTIONS = {
    SubstringChoice.INITIAL: "Substrings Initial",
    SubstringChoice.ANY: "Substrings Any",
    SubstringChoice.FINAL: "Substrings Final",
}


class MatchingRuleAssertion(enum.IntEnum):
    """Context tags of the fields of a MatchingRuleAssertion."""

    MATCHING_RULE = 1
    TYPE = 2
    MATCH_VALUE = 3
    DN_ATTRIBUTES = 4

    @property
    def description(self) -> str:
        """Human readable name of the assertion field."""
        return _ASSERTION_DESCRIPTIONS[self]


_ASSERTION_DESCRIPTIONS = {
    MatchingRuleAssertion.MATCHING_RULE: "Matching Rule Assertion Matching Rule",
    MatchingRuleAssertion.TYPE: "Matching Rule Assertion Type",
    MatchingRuleAssertion.MATCH_VALUE: "Matching Rule Assertion Match Value",
    MatchingRuleAssertion.DN_ATTRIBUTES: "Matching Rule Assertion DN Attributes",
}

_RUNE_ERROR = 0xFFFD
_SYMBOL_ANY = b"*"
_HEX_DIGITS = frozenset(b"0123456789abcdefABCDEF")


class _State(enum.Enum):
    ATTR = enum.auto()
    MATCHING_RULE = enum.auto()
    CONDITION = enum.auto()


def _as_bytes(value: str | bytes) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return value.encode("utf-8", "surrogateescape")


def _as_text(data: bytes) -> str:
    return data.decode("utf-8", "surrogateescape")


def _decode_rune(buf: bytes, pos: int) -> tuple[int, int]:
    """Decode one UTF-8 code point; invalid input yields (U+FFFD, 1), end of data (U+FFFD, 0)."""
    if pos >= len(buf):
        return _RUNE_ERROR, 0
    first = buf[pos]
    if first < 0x80:
        return first, 1
    if 0xC2 <= first <= 0xDF:
        size = 2
    elif 0xE0 <= first <= 0xEF:
        size = 3
    elif 0xF0 <= first <= 0xF4:
        size = 4
    else:
        return _RUNE_ERROR, 1
    chunk = buf[pos : pos + size]
    if len(chunk) < size:
        return _RUNE_ERROR, 1
    try:
        char = chunk.decode("utf-8")
    except UnicodeDecodeError:
        return _RUNE_ERROR, 1
    return ord(char), size


def _compile_error(message: str) -> LDAPError:
    return new_error(ResultCode.ERROR_FILTER_COMPILE, message)


def _format_invalid_byte(value: int) -> str:
    char = chr(value)
    if char.isprintable():
        return f"U+{value:04X} '{char}'"
    return f"U+{value:04X}"


def escape_filter(value: str | bytes) -> str:
    """Escape the bytes of ``value`` that may not appear literally in a filter."""
    return "".join(
        f"\\{byte:02x}" if byte > 0x7F or byte in b"()\\*\x00" else chr(byte)
        for byte in _as_bytes(value)
    )


def decode_escaped_symbols(src: str | bytes) -> bytes:
    """Turn ``ABC\\xx`` escapes into the literal bytes they stand for."""
    data = _as_bytes(src)
    out = bytearray()
    pos = 0
    offset = 0
    while pos < len(data):
        rune, width = _decode_rune(data, pos)
        if rune == _RUNE_ERROR:
            raise _compile_error(f"ldap: error reading rune at position {offset}")
        if rune == ord("\\"):
            # A backslash must be followed by two hex digits (RFC 4515).
            digits = data[pos + 1 : pos + 3]
            if not digits:
                raise _compile_error("ldap: invalid characters for escape in filter: EOF")
            if len(digits) < 2:
                raise _compile_error("ldap: missing characters for escape in filter")
            for digit in digits:
                if digit not in _HEX_DIGITS:
                    raise _compile_error(
                        "ldap: invalid characters for escape in filter: "
                        f"encoding/hex: invalid byte: {_format_invalid_byte(digit)}"
                    )
            out.append(int(digits.decode("ascii"), 16))
            pos += width + 2
        else:
            out += data[pos : pos + width]
            pos += width
        offset += width
    return bytes(out)


def compile_filter(filter_str: str | bytes) -> Packet:
    """Compile a filter string such as ``(&(cn=a*)(sn=b))`` into a BER packet."""
    buf = _as_bytes(filter_str)
    if not buf or buf[0] != ord("("):
        raise _compile_error("ldap: filter does not start with an '('")
    packet, pos = _compile(buf, 1)
    if pos > len(buf):
        raise _compile_error("ldap: unexpected end of filter")
    if pos < len(buf):
        raise _compile_error(
            "ldap: finished compiling filter with extra at end: " + _as_text(buf[pos:])
        )
    return packet


def _compile_set(buf: bytes, pos: int, parent: Packet) -> int:
    while pos < len(buf) and buf[pos] == ord("("):
        child, pos = _compile(buf, pos + 1)
        parent.append_child(child)
    if pos == len(buf):
        raise _compile_error("ldap: unexpected end of filter")
    return pos + 1


def _compile(buf: bytes, pos: int) -> tuple[Packet, int]:
    rune, width = _decode_rune(buf, pos)
    if rune == _RUNE_ERROR:
        raise _compile_error(f"ldap: error reading rune at position {pos}")
    if rune == ord("("):
        packet, new_pos = _compile(buf, pos + width)
        return packet, new_pos + 1
    if rune in (ord("&"), ord("|")):
        choice = FilterChoice.AND if rune == ord("&") else FilterChoice.OR
        packet = new_constructed(BerClass.CONTEXT, choice, choice.description)
        return packet, _compile_set(buf, pos + width, packet)
    if rune == ord("!"):
        packet = new_constructed(
            BerClass.CONTEXT, FilterChoice.NOT, FilterChoice.NOT.description
        )
        child, new_pos = _compile(buf, pos + width)
        packet.append_child(child)
        return packet, new_pos
    return _compile_item(buf, pos)


_ATTR_OPERATORS: tuple[tuple[bytes, FilterChoice, _State, bool], ...] = (
    (b":dn:=", FilterChoice.EXTENSIBLE_MATCH, _State.CONDITION, True),
    (b":dn:", FilterChoice.EXTENSIBLE_MATCH, _State.MATCHING_RULE, True),
    (b":=", FilterChoice.EXTENSIBLE_MATCH, _State.CONDITION, False),
    (b":", FilterChoice.EXTENSIBLE_MATCH, _State.MATCHING_RULE, False),
    (b"=", FilterChoice.EQUALITY_MATCH, _State.CONDITION, False),
    (b">=", FilterChoice.GREATER_OR_EQUAL, _State.CONDITION, False),
    (b"<=", FilterChoice.LESS_OR_EQUAL, _State.CONDITION, False),
    (b"~=", FilterChoice.APPROX_MATCH, _State.CONDITION, False),
)


def _compile_item(buf: bytes, pos: int) -> tuple[Packet, int]:
    state = _State.ATTR
    choice: FilterChoice | None = None
    attribute = bytearray()
    matching_rule = bytearray()
    condition = bytearray()
    dn_attributes = False
    width = 0

    while pos < len(buf):
        rune, width = _decode_rune(buf, pos)
        if rune == ord(")"):
            break
        if rune == _RUNE_ERROR:
            raise _compile_error(f"ldap: error reading rune at position {pos}")

        if state is _State.ATTR:
            for prefix, op_choice, next_state, with_dn in _ATTR_OPERATORS:
                if buf.startswith(prefix, pos):
                    choice = op_choice
                    state = next_state
                    dn_attributes = dn_attributes or with_dn
                    pos += len(prefix)
                    break
            else:
                attribute += buf[pos : pos + width]
                pos += width
        elif state is _State.MATCHING_RULE:
            if buf.startswith(b":=", pos):
                state = _State.CONDITION
                pos += 2
            else:
                matching_rule += buf[pos : pos + width]
                pos += width
        else:
            condition += buf[pos : pos + width]
            pos += width

    if pos == len(buf):
        raise _compile_error("ldap: unexpected end of filter")
    if choice is None:
        raise _compile_error("ldap: error parsing filter")

    attr_bytes = bytes(attribute)
    cond_bytes = bytes(condition)

    if choice is FilterChoice.EXTENSIBLE_MATCH:
        packet = new_constructed(BerClass.CONTEXT, choice, choice.description)
        if matching_rule:
            packet.append_child(_context_string(MatchingRuleAssertion.MATCHING_RULE, bytes(matching_rule)))
        if attr_bytes:
            packet.append_child(_context_string(MatchingRuleAssertion.TYPE, attr_bytes))
        packet.append_child(
            _context_string(MatchingRuleAssertion.MATCH_VALUE, decode_escaped_symbols(cond_bytes))
        )
        if dn_attributes:
            packet.append_child(
                new_boolean(
                    BerClass.CONTEXT,
                    TagType.PRIMITIVE,
                    MatchingRuleAssertion.DN_ATTRIBUTES,
                    True,
                    MatchingRuleAssertion.DN_ATTRIBUTES.description,
                )
            )
    elif choice is FilterChoice.EQUALITY_MATCH and cond_bytes == _SYMBOL_ANY:
        packet = new_string(
            BerClass.CONTEXT,
            TagType.PRIMITIVE,
            FilterChoice.PRESENT,
            attr_bytes,
            FilterChoice.PRESENT.description,
        )
    elif choice is FilterChoice.EQUALITY_MATCH and _SYMBOL_ANY in cond_bytes:
        packet = new_constructed(
            BerClass.CONTEXT, FilterChoice.SUBSTRINGS, FilterChoice.SUBSTRINGS.description
        )
        packet.append_child(_octet_string(attr_bytes, "Attribute"))
        seq = new_constructed(BerClass.UNIVERSAL, Tag.SEQUENCE, "Substrings")
        parts = cond_bytes.split(_SYMBOL_ANY)
        last = len(parts) - 1
        for index, part in enumerate(parts):
            if not part:
                continue
            if index == 0:
                tag = SubstringChoice.INITIAL
            elif index == last:
                tag = SubstringChoice.FINAL
            else:
                tag = SubstringChoice.ANY
            seq.append_child(
                new_string(
                    BerClass.CONTEXT,
                    TagType.PRIMITIVE,
                    tag,
                    decode_escaped_symbols(part),
                    tag.description,
                )
            )
        packet.append_child(seq)
    else:
        value = decode_escaped_symbols(cond_bytes)
        packet = new_constructed(BerClass.CONTEXT, choice, choice.description)
        packet.append_child(_octet_string(attr_bytes, "Attribute"))
        packet.append_child(_octet_string(value, "Condition"))

    return packet, pos + width


def _context_string(field: MatchingRuleAssertion, value: bytes) -> Packet:
    return new_string(BerClass.CONTEXT, TagType.PRIMITIVE, field, value, field.description)


def _octet_string(value: bytes, description: str) -> Packet:
    return new_string(
        BerClass.UNIVERSAL, TagType.PRIMITIVE, Tag.OCTET_STRING, value, description
    )


def decompile_filter(packet: Packet) -> str:
    """Render a filter packet back into its string form."""
    try:
        return _decompile(packet)
    except LDAPError:
        raise
    except Exception as exc:
        raise new_error(
            ResultCode.ERROR_FILTER_DECOMPILE, "ldap: error decompiling filter"
        ) from exc


def _decompile(packet: Packet) -> str:
    tag = packet.tag
    children = packet.children
    if tag == FilterChoice.AND:
        body = "&" + "".join(decompile_filter(child) for child in children)
    elif tag == FilterChoice.OR:
        body = "|" + "".join(decompile_filter(child) for child in children)
    elif tag == FilterChoice.NOT:
        body = "!" + decompile_filter(children[0])
    elif tag == FilterChoice.SUBSTRINGS:
        pieces = [_as_text(children[0].data), "="]
        for index, child in enumerate(children[1].children):
            if index == 0 and child.tag != SubstringChoice.INITIAL:
                pieces.append("*")
            pieces.append(escape_filter(child.data))
            if child.tag != SubstringChoice.FINAL:
                pieces.append("*")
        body = "".join(pieces)
    elif tag in _BINARY_OPERATORS:
        body = (
            _as_text(children[0].data)
            + _BINARY_OPERATORS[tag]
            + escape_filter(children[1].data)
        )
    elif tag == FilterChoice.PRESENT:
        body = _as_text(packet.data) + "=*"
    elif tag == FilterChoice.EXTENSIBLE_MATCH:
        body = _decompile_extensible(children)
    else:
        body = ""
    return f"({body})"


_BINARY_OPERATORS = {
    FilterChoice.EQUALITY_MATCH: "=",
    FilterChoice.GREATER_OR_EQUAL: ">=",
    FilterChoice.LESS_OR_EQUAL: "<=",
    FilterChoice.APPROX_MATCH: "~=",
}


def _decompile_extensible(children: list[Packet | None]) -> str:
    attr = ""
    matching_rule = ""
    value = b""
    dn_attributes = False
    for child in children:
        if child.tag == MatchingRuleAssertion.MATCHING_RULE:
            matching_rule = _as_text(child.data)
        elif child.tag == MatchingRuleAssertion.TYPE:
            attr = _as_text(child.data)
        elif child.tag == MatchingRuleAssertion.MATCH_VALUE:
            value = child.data
        elif child.tag == MatchingRuleAssertion.DN_ATTRIBUTES:
            dn_attributes = bool(child.value) if child.value is not None else any(child.data)

    pieces = [attr]
    if dn_attributes:
        pieces.append(":dn")
    if matching_rule:
        pieces.append(":" + matching_rule)
    pieces.append(":=")
    pieces.append(escape_filter(value))
    return "".join(pieces)