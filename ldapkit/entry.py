"""Search requests, result entries and mapping entries onto dataclasses."""

from __future__ import annotations

import dataclasses
import enum
import re
import typing
from dataclasses import dataclass, field
from typing import Any

from .ber import (
    BerClass,
    Packet,
    Tag,
    TagType,
    new_boolean,
    new_constructed,
    new_integer,
    new_sequence,
    new_string,
)
from .errors import get_ldap_error
from .filter import compile_filter
from .requests import Application

__all__ = [
    "Scope",
    "DerefAliases",
    "EntryAttribute",
    "Entry",
    "SearchResult",
    "SearchRequest",
    "new_entry",
    "new_entry_attribute",
    "unpack_attributes",
]

_DECODER_TAG_NAME = "ldap"
_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_STR_LIST_NAMES = {"list[str]", "List[str]", "typing.List[str]"}


class Scope(enum.IntEnum):
    """Search scope choices."""

    BASE_OBJECT = 0
    SINGLE_LEVEL = 1
    WHOLE_SUBTREE = 2

    @property
    def description(self) -> str:
        """Human readable name of the scope."""
        return _SCOPE_DESCRIPTIONS[self]


_SCOPE_DESCRIPTIONS = {
    Scope.BASE_OBJECT: "Base Object",
    Scope.SINGLE_LEVEL: "Single Level",
    Scope.WHOLE_SUBTREE: "Whole Subtree",
}


class DerefAliases(enum.IntEnum):
    """Alias dereferencing choices."""

    NEVER = 0
    IN_SEARCHING = 1
    FINDING_BASE_OBJ = 2
    ALWAYS = 3

    @property
    def description(self) -> str:
        """Human readable name of the choice."""
        return _DEREF_DESCRIPTIONS[self]


_DEREF_DESCRIPTIONS = {
    DerefAliases.NEVER: "NeverDerefAliases",
    DerefAliases.IN_SEARCHING: "DerefInSearching",
    DerefAliases.FINDING_BASE_OBJ: "DerefFindingBaseObj",
    DerefAliases.ALWAYS: "DerefAlways",
}


def _equal_fold(left: str, right: str) -> bool:
    return left == right or left.lower() == right.lower() or left.upper() == right.upper()


def _format_values(values: list[str]) -> str:
    return "[" + " ".join(values) + "]"


@dataclass
class EntryAttribute:
    """One attribute of an entry, with text and raw values."""

    name: str
    values: list[str] = field(default_factory=list)
    byte_values: list[bytes] = field(default_factory=list)

    def print(self) -> None:
        """Write a one-line description to standard output."""
        print(f"{self.name}: {_format_values(self.values)}")

    def pretty_print(self, indent: int) -> None:
        """Write a one-line description indented by ``indent`` spaces."""
        print(f"{' ' * indent}{self.name}: {_format_values(self.values)}")


def new_entry_attribute(name: str, values: list[str]) -> EntryAttribute:
    """Build an attribute whose raw values are the UTF-8 bytes of ``values``."""
    values = list(values)
    return EntryAttribute(
        name=name,
        values=values,
        byte_values=[value.encode("utf-8", "surrogateescape") for value in values],
    )


def _read_tag(f: dataclasses.Field) -> tuple[str, bool]:
    tag = f.metadata.get(_DECODER_TAG_NAME)
    if tag is None:
        return f.name, False
    options = str(tag).split(",")
    omit = len(options) == 2 and options[1] == "omitempty"
    return options[0], omit


def _is_str_list(hint: Any) -> bool:
    if isinstance(hint, str):
        return hint.replace(" ", "") in _STR_LIST_NAMES
    return typing.get_origin(hint) is list and typing.get_args(hint) == (str,)


def _parse_int(text: str) -> int:
    if not _INT_PATTERN.fullmatch(text):
        raise ValueError(f"ldap: could not parse value '{text}' into int field")
    number = int(text)
    if not _INT64_MIN <= number <= _INT64_MAX:
        raise ValueError(f"ldap: could not parse value '{text}' into int field")
    return number


@dataclass
class Entry:
    """A single search result entry."""

    dn: str = ""
    attributes: list[EntryAttribute] = field(default_factory=list)

    def get_attribute_values(self, attribute: str) -> list[str]:
        """Values of the named attribute, or an empty list."""
        for attr in self.attributes:
            if attr.name == attribute:
                return attr.values
        return []

    def get_equal_fold_attribute_values(self, attribute: str) -> list[str]:
        """Values of the named attribute matched case-insensitively, or an empty list."""
        for attr in self.attributes:
            if _equal_fold(attribute, attr.name):
                return attr.values
        return []

    def get_raw_attribute_values(self, attribute: str) -> list[bytes]:
        """Raw values of the named attribute, or an empty list."""
        for attr in self.attributes:
            if attr.name == attribute:
                return attr.byte_values
        return []

    def get_equal_fold_raw_attribute_values(self, attribute: str) -> list[bytes]:
        """Raw values of the named attribute matched case-insensitively, or an empty list."""
        for attr in self.attributes:
            if _equal_fold(attr.name, attribute):
                return attr.byte_values
        return []

    def get_attribute_value(self, attribute: str) -> str:
        """First value of the named attribute, or an empty string."""
        values = self.get_attribute_values(attribute)
        return values[0] if values else ""

    def get_equal_fold_attribute_value(self, attribute: str) -> str:
        """First value of the case-insensitively named attribute, or an empty string."""
        values = self.get_equal_fold_attribute_values(attribute)
        return values[0] if values else ""

    def get_raw_attribute_value(self, attribute: str) -> bytes:
        """First raw value of the named attribute, or empty bytes."""
        values = self.get_raw_attribute_values(attribute)
        return values[0] if values else b""

    def get_equal_fold_raw_attribute_value(self, attribute: str) -> bytes:
        """First raw value of the case-insensitively named attribute, or empty bytes."""
        values = self.get_equal_fold_raw_attribute_values(attribute)
        return values[0] if values else b""

    def print(self) -> None:
        """Write the DN and attributes to standard output."""
        print(f"DN: {self.dn}")
        for attr in self.attributes:
            attr.print()

    def pretty_print(self, indent: int) -> None:
        """Write the DN and attributes with indentation."""
        print(f"{' ' * indent}DN: {self.dn}")
        for attr in self.attributes:
            attr.pretty_print(indent + 2)

    def unmarshal(self, target: Any) -> None:
        """Fill the fields of a dataclass instance from this entry.

        A field's attribute name comes from ``metadata={"ldap": "name"}``, or is
        the field name. The name ``dn`` receives the entry's DN. Supported field
        types are ``str``, ``list[str]``, ``int`` and ``bytes``; single-valued
        fields take the first value. Missing attributes leave fields untouched.
        """
        if isinstance(target, type) or not dataclasses.is_dataclass(target):
            raise TypeError(
                f"ldap: expected a dataclass instance, got {type(target).__name__}"
            )

        for f in dataclasses.fields(target):
            if f.name.startswith("_"):
                continue
            field_tag, _ = _read_tag(f)

            if field_tag == "dn":
                setattr(target, f.name, self.dn)
                continue

            values = self.get_attribute_values(field_tag)
            if not values:
                continue

            hint = f.type
            if _is_str_list(hint):
                current = getattr(target, f.name, None) or []
                setattr(target, f.name, [*current, *values])
            elif hint in (str, "str"):
                setattr(target, f.name, values[0])
            elif hint in (bytes, "bytes"):
                setattr(target, f.name, values[0].encode("utf-8", "surrogateescape"))
            elif hint in (int, "int"):
                setattr(target, f.name, _parse_int(values[0]))
            else:
                raise TypeError(
                    "ldap: expected field to be of type str, list[str], int or bytes, "
                    f"got {hint}"
                )


def new_entry(dn: str, attributes: dict[str, list[str]]) -> Entry:
    """Build an entry whose attributes appear in alphabetical order of their names."""
    return Entry(
        dn=dn,
        attributes=[
            new_entry_attribute(name, attributes[name]) for name in sorted(attributes)
        ],
    )


def unpack_attributes(children: list[Packet]) -> list[EntryAttribute]:
    """Extract attributes and their values from PartialAttribute packets."""
    return [
        EntryAttribute(
            name=child.children[0].value,
            values=[value.value for value in child.children[1].children],
            byte_values=[value.byte_value for value in child.children[1].children],
        )
        for child in children
    ]


@dataclass
class SearchResult:
    """Entries, referrals and controls returned by a search."""

    entries: list[Entry] = field(default_factory=list)
    referrals: list[str] = field(default_factory=list)
    controls: list[Packet] = field(default_factory=list)

    def print(self) -> None:
        """Write every entry to standard output."""
        for entry in self.entries:
            entry.print()

    def pretty_print(self, indent: int) -> None:
        """Write every entry with indentation."""
        for entry in self.entries:
            entry.pretty_print(indent)

    def add_packet(self, packet: Packet) -> bool:
        """Take in one response message; return True once the search is done.

        Raises the LDAPError reported by a failing SearchResultDone.
        """
        response = packet.children[1]
        tag = response.tag
        if tag == Application.SEARCH_RESULT_ENTRY:
            self.entries.append(
                Entry(
                    dn=response.children[0].value,
                    attributes=unpack_attributes(response.children[1].children),
                )
            )
        elif tag == Application.SEARCH_RESULT_DONE:
            err = get_ldap_error(packet)
            if err is not None:
                raise err
            if len(packet.children) == 3 and packet.children[2] is not None:
                self.controls.extend(
                    child for child in packet.children[2].children if child is not None
                )
            return True
        elif tag == Application.SEARCH_RESULT_REFERENCE:
            self.referrals.append(response.children[0].value)
        return False


@dataclass
class SearchRequest:
    """A search request; controls are pre-encoded control packets."""

    base_dn: str
    scope: int = Scope.BASE_OBJECT
    deref_aliases: int = DerefAliases.NEVER
    size_limit: int = 0
    time_limit: int = 0
    types_only: bool = False
    filter: str = "(objectClass=*)"
    attributes: list[str] = field(default_factory=list)
    controls: list[Packet] = field(default_factory=list)

    def append_to(self, envelope: Packet) -> None:
        """Append the encoded operation (and controls) to an LDAPMessage.

        Raises LDAPError when the filter does not compile.
        """
        op = new_constructed(
            BerClass.APPLICATION,
            Application.SEARCH_REQUEST,
            Application.SEARCH_REQUEST.description,
        )
        op.append_child(
            new_string(
                BerClass.UNIVERSAL, TagType.PRIMITIVE, Tag.OCTET_STRING, self.base_dn, "Base DN"
            )
        )
        for tag, number, description in (
            (Tag.ENUMERATED, self.scope, "Scope"),
            (Tag.ENUMERATED, self.deref_aliases, "Deref Aliases"),
            (Tag.INTEGER, self.size_limit, "Size Limit"),
            (Tag.INTEGER, self.time_limit, "Time Limit"),
        ):
            op.append_child(
                new_integer(BerClass.UNIVERSAL, TagType.PRIMITIVE, tag, int(number), description)
            )
        op.append_child(
            new_boolean(
                BerClass.UNIVERSAL, TagType.PRIMITIVE, Tag.BOOLEAN, self.types_only, "Types Only"
            )
        )
        op.append_child(compile_filter(self.filter))
        attributes = new_sequence("Attributes")
        for attribute in self.attributes:
            attributes.append_child(
                new_string(
                    BerClass.UNIVERSAL,
                    TagType.PRIMITIVE,
                    Tag.OCTET_STRING,
                    attribute,
                    "Attribute",
                )
            )
        op.append_child(attributes)

        envelope.append_child(op)
        if self.controls:
            controls = new_constructed(BerClass.CONTEXT, 0, "Controls")
            for control in self.controls:
                controls.append_child(control)
            envelope.append_child(controls)