import pytest

from ldapkit.ber import (
    BerClass,
    Packet,
    Tag,
    TagType,
    new_constructed,
    new_integer,
    new_sequence,
    new_string,
)
from ldapkit.errors import (
    LDAPError,
    ResultCode,
    get_ldap_error,
    is_error_any_of,
    is_error_with_code,
    new_error,
)

BIND_RESPONSE_TAG = 1


def _bind_response(code, matched_dn, message):
    response = new_constructed(BerClass.APPLICATION, BIND_RESPONSE_TAG, "Bind Response")
    response.append_child(
        new_integer(BerClass.UNIVERSAL, TagType.PRIMITIVE, Tag.INTEGER, code, "resultCode")
    )
    response.append_child(
        new_string(BerClass.UNIVERSAL, TagType.PRIMITIVE, Tag.OCTET_STRING, matched_dn, "matchedDN")
    )
    response.append_child(
        new_string(BerClass.UNIVERSAL, TagType.PRIMITIVE, Tag.OCTET_STRING, message, "diagnosticMessage")
    )
    packet = new_sequence("LDAPMessage")
    packet.append_child(
        new_integer(BerClass.UNIVERSAL, TagType.PRIMITIVE, Tag.INTEGER, 0, "messageID")
    )
    packet.append_child(response)
    return packet


def test_nil_packet():
    err = get_ldap_error(None)
    assert is_error_with_code(err, ResultCode.ERROR_UNEXPECTED_RESPONSE)


def test_nil_result_in_packet():
    packet = Packet(children=[Packet(), None])
    err = get_ldap_error(packet)
    assert is_error_with_code(err, ResultCode.ERROR_UNEXPECTED_RESPONSE)
    assert err.packet is packet


def test_get_ldap_error():
    diagnostic_message = "Detailed error message"
    packet = _bind_response(
        ResultCode.INVALID_CREDENTIALS, "dc=example,dc=org", diagnostic_message
    )
    err = get_ldap_error(packet)
    assert isinstance(err, LDAPError)
    assert err.result_code == ResultCode.INVALID_CREDENTIALS
    assert str(err.err) == diagnostic_message
    assert err.matched_dn == "dc=example,dc=org"


def test_get_ldap_error_success():
    assert get_ldap_error(_bind_response(0, "", "")) is None


def test_invalid_packet_format_is_network_error():
    packet = new_sequence("LDAPMessage")
    packet.append_child(
        new_integer(BerClass.UNIVERSAL, TagType.PRIMITIVE, Tag.INTEGER, 0, "messageID")
    )
    err = get_ldap_error(packet)
    assert err.result_code == ResultCode.ERROR_NETWORK
    assert str(err.err) == "Invalid packet format"


def test_error_message_format():
    err = new_error(
        ResultCode.ERROR_FILTER_COMPILE, "ldap: missing characters for escape in filter"
    )
    assert str(err) == (
        'LDAP Result Code 201 "Filter Compile Error": '
        "ldap: missing characters for escape in filter"
    )


def test_error_wraps_exception():
    cause = ValueError("boom")
    err = new_error(ResultCode.ERROR_NETWORK, cause)
    assert err.__cause__ is cause
    assert str(err) == 'LDAP Result Code 200 "Network Error": boom'


def test_error_can_be_raised_and_caught():
    err = new_error(ResultCode.ERROR_UNEXPECTED_RESPONSE, "Unexpected Response: 3")
    assert err.result_code == ResultCode.ERROR_UNEXPECTED_RESPONSE
    with pytest.raises(LDAPError) as info:
        raise err
    assert info.value is err
    assert str(info.value) == (
        'LDAP Result Code 205 "Unexpected Response": Unexpected Response: 3'
    )


def test_is_error_any_of():
    err = new_error(ResultCode.REFERRAL, "x")
    assert is_error_any_of(err, ResultCode.BUSY, ResultCode.REFERRAL)
    assert not is_error_any_of(err, ResultCode.BUSY)
    assert not is_error_any_of(err)
    assert not is_error_any_of(None, ResultCode.REFERRAL)
    assert not is_error_any_of(ValueError("x"), ResultCode.REFERRAL)


def test_description_lookup():
    assert ResultCode.INVALID_CREDENTIALS.description == "Invalid Credentials"
    assert new_error(ResultCode.ERROR_USAGE, "x").description == ""
    assert str(new_error(ResultCode.ERROR_USAGE, "x")) == 'LDAP Result Code 207 "": x'