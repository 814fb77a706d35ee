"""LDAP modify, modify-DN, unbind and "Who Am I?" operations (RFC 4511, RFC 4532)."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Protocol

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
from .errors import LDAPError, ResultCode, get_ldap_error, is_error_with_code, new_error

__all__ = [
    "Application",
    "ChangeOperation",
    "PartialAttribute",
    "Change",
    "ModifyRequest",
    "ModifyResult",
    "ModifyDNRequest",
    "UnbindRequest",
    "WhoAmIRequest",
    "WhoAmIResult",
    "CONTROL_TYPE_WHO_AM_I",
    "build_envelope",
    "get_referral",
    "parse_modify_response",
    "parse_who_am_i_response",
]

CONTROL_TYPE_WHO_AM_I = "1.3.6.1.4.1.4203.1.11.3"


class Application(enum.IntEnum):
    """Application tags of the LDAP protocol operations."""

    BIND_REQUEST = 0
    BIND_RESPONSE = 1
    UNBIND_REQUEST = 2
    SEARCH_REQUEST = 3
    SEARCH_RESULT_ENTRY = 4
    SEARCH_RESULT_DONE = 5
    MODIFY_REQUEST = 6
    MODIFY_RESPONSE = 7
    ADD_REQUEST = 8
    ADD_RESPONSE = 9
    DEL_REQUEST = 10
    DEL_RESPONSE = 11
    MODIFY_DN_REQUEST = 12
    MODIFY_DN_RESPONSE = 13
    COMPARE_REQUEST = 14
    COMPARE_RESPONSE = 15
    ABANDON_REQUEST = 16
    SEARCH_RESULT_REFERENCE = 19
    EXTENDED_REQUEST = 23
    EXTENDED_RESPONSE = 24
    INTERMEDIATE_RESPONSE = 25

    @property
    def description(self) -> str:
        """Human readable name of the operation."""
        return _APPLICATION_DESCRIPTIONS[self]


_APPLICATION_DESCRIPTIONS = {
    Application.BIND_REQUEST: "Bind Request",
    Application.BIND_RESPONSE: "Bind Response",
    Application.UNBIND_REQUEST: "Unbind Request",
    Application.SEARCH_REQUEST: "Search Request",
    Application.SEARCH_RESULT_ENTRY: "Search Result Entry",
    Application.SEARCH_RESULT_DONE: "Search Result Done",
    Application.MODIFY_REQUEST: "Modify Request",
    Application.MODIFY_RESPONSE: "Modify Response",
    Application.ADD_REQUEST: "Add Request",
    Application.ADD_RESPONSE: "Add Response",
    Application.DEL_REQUEST: "Del Request",
    Application.DEL_RESPONSE: "Del Response",
    Application.MODIFY_DN_REQUEST: "Modify DN Request",
    Application.MODIFY_DN_RESPONSE: "Modify DN Response",
    Application.COMPARE_REQUEST: "Compare Request",
    Application.COMPARE_RESPONSE: "Compare Response",
    Application.ABANDON_REQUEST: "Abandon Request",
    Application.SEARCH_RESULT_REFERENCE: "Search Result Reference",
    Application.EXTENDED_REQUEST: "Extended Request",
    Application.EXTENDED_RESPONSE: "Extended Response",
    Application.INTERMEDIATE_RESPONSE: "Intermediate Response",
}


class ChangeOperation(enum.IntEnum):
    """Operations of a modify change; INCREMENT is defined by RFC 4525."""

    ADD = 0
    DELETE = 1
    REPLACE = 2
    INCREMENT = 3


class _Request(Protocol):
    def append_to(self, envelope: Packet) -> None: ...


def _octet_string(value: str | bytes, description: str) -> Packet:
    return new_string(
        BerClass.UNIVERSAL, TagType.PRIMITIVE, Tag.OCTET_STRING, value, description
    )


def _encode_controls(controls: list[Packet]) -> Packet:
    packet = new_constructed(BerClass.CONTEXT, 0, "Controls")
    for control in controls:
        packet.append_child(control)
    return packet


def _append_with_controls(envelope: Packet, op: Packet, controls: list[Packet]) -> None:
    envelope.append_child(op)
    if controls:
        envelope.append_child(_encode_controls(controls))


@dataclass
class PartialAttribute:
    """An attribute type with the values a change applies to."""

    type: str
    vals: list[str] = field(default_factory=list)

    def encode(self) -> Packet:
        """Encode as a PartialAttribute SEQUENCE."""
        seq = new_sequence("PartialAttribute")
        seq.append_child(_octet_string(self.type, "Type"))
        values = new_constructed(BerClass.UNIVERSAL, Tag.SET, "AttributeValue")
        for value in self.vals:
            values.append_child(_octet_string(value, "Vals"))
        seq.append_child(values)
        return seq


@dataclass
class Change:
    """One change of a modify request."""

    operation: ChangeOperation
    modification: PartialAttribute

    def encode(self) -> Packet:
        """Encode as a change SEQUENCE."""
        change = new_sequence("Change")
        change.append_child(
            new_integer(
                BerClass.UNIVERSAL,
                TagType.PRIMITIVE,
                Tag.ENUMERATED,
                int(self.operation),
                "Operation",
            )
        )
        change.append_child(self.modification.encode())
        return change


@dataclass
class ModifyRequest:
    """A modify request for one entry; controls are pre-encoded control packets."""

    dn: str
    changes: list[Change] = field(default_factory=list)
    controls: list[Packet] = field(default_factory=list)

    def _append_change(
        self, operation: ChangeOperation, attr_type: str, attr_vals: list[str]
    ) -> None:
        self.changes.append(
            Change(operation, PartialAttribute(type=attr_type, vals=list(attr_vals)))
        )

    def add(self, attr_type: str, attr_vals: list[str]) -> None:
        """Queue adding values to an attribute."""
        self._append_change(ChangeOperation.ADD, attr_type, attr_vals)

    def delete(self, attr_type: str, attr_vals: list[str]) -> None:
        """Queue deleting values (or the whole attribute when empty)."""
        self._append_change(ChangeOperation.DELETE, attr_type, attr_vals)

    def replace(self, attr_type: str, attr_vals: list[str]) -> None:
        """Queue replacing all values of an attribute."""
        self._append_change(ChangeOperation.REPLACE, attr_type, attr_vals)

    def increment(self, attr_type: str, attr_val: str) -> None:
        """Queue incrementing an attribute by the given amount."""
        self._append_change(ChangeOperation.INCREMENT, attr_type, [attr_val])

    def append_to(self, envelope: Packet) -> None:
        """Append the encoded operation (and controls) to an LDAPMessage."""
        op = new_constructed(
            BerClass.APPLICATION,
            Application.MODIFY_REQUEST,
            Application.MODIFY_REQUEST.description,
        )
        op.append_child(_octet_string(self.dn, "DN"))
        changes = new_sequence("Changes")
        for change in self.changes:
            changes.append_child(change.encode())
        op.append_child(changes)
        _append_with_controls(envelope, op, self.controls)


@dataclass
class ModifyResult:
    """The server's answer to a modify request."""

    controls: list[Packet] = field(default_factory=list)
    referral: str = ""


@dataclass
class ModifyDNRequest:
    """Rename an entry and optionally move it below ``new_superior``.

    To move without renaming, ``new_rdn`` must be the entry's current first RDN;
    an empty ``new_superior`` keeps the entry under its current parent.
    """

    dn: str
    new_rdn: str
    delete_old_rdn: bool
    new_superior: str = ""
    controls: list[Packet] = field(default_factory=list)

    def append_to(self, envelope: Packet) -> None:
        """Append the encoded operation (and controls) to an LDAPMessage."""
        op = new_constructed(
            BerClass.APPLICATION,
            Application.MODIFY_DN_REQUEST,
            Application.MODIFY_DN_REQUEST.description,
        )
        op.append_child(_octet_string(self.dn, "DN"))
        op.append_child(_octet_string(self.new_rdn, "New RDN"))
        if self.delete_old_rdn:
            op.append_child(
                Packet(
                    class_type=BerClass.UNIVERSAL,
                    tag_type=TagType.PRIMITIVE,
                    tag=Tag.BOOLEAN,
                    value=True,
                    description="Delete old RDN",
                    data=b"\xff",
                )
            )
        else:
            op.append_child(
                new_boolean(
                    BerClass.UNIVERSAL,
                    TagType.PRIMITIVE,
                    Tag.BOOLEAN,
                    False,
                    "Delete old RDN",
                )
            )
        if self.new_superior:
            op.append_child(
                new_string(
                    BerClass.CONTEXT,
                    TagType.PRIMITIVE,
                    0,
                    self.new_superior,
                    "New Superior",
                )
            )
        _append_with_controls(envelope, op, self.controls)


@dataclass
class UnbindRequest:
    """The unbind ("quit") operation."""

    def append_to(self, envelope: Packet) -> None:
        """Append the encoded operation to an LDAPMessage."""
        envelope.append_child(
            Packet(
                class_type=BerClass.APPLICATION,
                tag_type=TagType.PRIMITIVE,
                tag=Application.UNBIND_REQUEST,
                description=Application.UNBIND_REQUEST.description,
            )
        )


@dataclass
class WhoAmIRequest:
    """The "Who Am I?" extended operation; controls such as proxied authorization may be given."""

    controls: list[Packet] = field(default_factory=list)

    def append_to(self, envelope: Packet) -> None:
        """Append the encoded operation (and controls) to an LDAPMessage."""
        op = new_constructed(
            BerClass.APPLICATION,
            Application.EXTENDED_REQUEST,
            "Who Am I? Extended Operation",
        )
        op.append_child(
            new_string(
                BerClass.CONTEXT,
                TagType.PRIMITIVE,
                0,
                CONTROL_TYPE_WHO_AM_I,
                "Extended Request Name: Who Am I? OID",
            )
        )
        _append_with_controls(envelope, op, self.controls)


@dataclass
class WhoAmIResult:
    """The authorization identity the server associates with the connection."""

    authz_id: str = ""


def build_envelope(message_id: int, request: _Request) -> Packet:
    """Wrap a request in an LDAPMessage with the given message ID."""
    packet = new_sequence("LDAP Request")
    packet.append_child(
        new_integer(
            BerClass.UNIVERSAL, TagType.PRIMITIVE, Tag.INTEGER, message_id, "MessageID"
        )
    )
    request.append_to(packet)
    return packet


def get_referral(err: BaseException | None, packet: Packet) -> str:
    """Extract the referral URL from a response when ``err`` is a referral error.

    Returns an empty string for any other error; raises ValueError when the
    error says referral but the packet holds none that can be read.
    """
    if not is_error_with_code(err, ResultCode.REFERRAL):
        return ""

    if len(packet.children) < 2:
        raise ValueError(
            "ldap: returned error indicates the packet contains a referral but it "
            f"doesn't have sufficient child nodes: {err}"
        ) from err

    response = packet.children[1]
    if response is None or response.tag != Tag.OBJECT_DESCRIPTOR:
        raise ValueError(
            "ldap: returned error indicates the packet contains a referral but the "
            f"relevant child node isn't an object descriptor: {err}"
        ) from err

    for child in response.children:
        if child is None or child.tag != Tag.BIT_STRING or not child.children:
            continue
        first = child.children[0]
        if first is not None and isinstance(first.value, str):
            return first.value

    raise ValueError(
        "ldap: returned error indicates the packet contains a referral but the "
        f"referral couldn't be decoded: {err}"
    ) from err


def _require_packet(packet: Packet | None) -> Packet:
    if packet is None:
        raise new_error(ResultCode.ERROR_NETWORK, "ldap: could not retrieve message")
    return packet


def parse_modify_response(packet: Packet | None) -> ModifyResult:
    """Interpret a modify response.

    Raises the LDAPError the server reported; the partial ModifyResult, with any
    referral, is attached to it as ``result``.
    """
    packet = _require_packet(packet)
    result = ModifyResult()
    response = packet.children[1]
    if response is None or response.tag != Application.MODIFY_RESPONSE:
        return result

    err = get_ldap_error(packet)
    if err is not None:
        result.referral = get_referral(err, packet)
        err.result = result
        raise err

    if len(packet.children) == 3 and packet.children[2] is not None:
        result.controls.extend(
            child for child in packet.children[2].children if child is not None
        )
    return result


def parse_who_am_i_response(packet: Packet | None) -> WhoAmIResult:
    """Interpret a "Who Am I?" extended response."""
    packet = _require_packet(packet)
    response = packet.children[1]
    tag = response.tag if response is not None else None
    if tag != Application.EXTENDED_RESPONSE:
        raise new_error(
            ResultCode.ERROR_UNEXPECTED_RESPONSE, f"Unexpected Response: {tag}"
        )
    err = get_ldap_error(packet)
    if err is not None:
        raise err

    result = WhoAmIResult()
    for child in response.children:
        if child is not None and child.tag == 11:
            result.authz_id = child.data.decode("utf-8", "surrogateescape")
    return result


def _is_ldap_error(value: object) -> bool:
    return isinstance(value, LDAPError)