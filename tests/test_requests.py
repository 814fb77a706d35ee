import pytest

from ldapkit.ber import (
    BerClass,
    Packet,
    Tag,
    TagType,
    decode_packet,
    new_constructed,
    new_integer,
    new_sequence,
    new_string,
)
from ldapkit.errors import LDAPError, ResultCode, new_error
from ldapkit.requests import (
    CONTROL_TYPE_WHO_AM_I,
    Application,
    Change,
    ChangeOperation,
    ModifyDNRequest,
    ModifyRequest,
    PartialAttribute,
    UnbindRequest,
    WhoAmIRequest,
    build_envelope,
    get_referral,
    parse_modify_response,
    parse_who_am_i_response,
)

USER_DN = "uid=user,ou=people,dc=example,dc=org"
NEW_BASE = "ou=users,dc=example,dc=org"
REFERRAL_URL = "ldap://ldap.example.com/dc=example,dc=com"


def _octet(value):
    return new_string(BerClass.UNIVERSAL, TagType.PRIMITIVE, Tag.OCTET_STRING, value, "")


def _response(tag, code, matched="", message="", extra=()):
    resp = new_constructed(BerClass.APPLICATION, tag, "Response")
    resp.append_child(
        new_integer(BerClass.UNIVERSAL, TagType.PRIMITIVE, Tag.ENUMERATED, code, "resultCode")
    )
    resp.append_child(_octet(matched))
    resp.append_child(_octet(message))
    for child in extra:
        resp.append_child(child)
    msg = new_sequence("LDAPMessage")
    msg.append_child(new_integer(BerClass.UNIVERSAL, TagType.PRIMITIVE, Tag.INTEGER, 1, "id"))
    msg.append_child(resp)
    return msg


def _referral_child():
    ref = new_constructed(BerClass.CONTEXT, 3, "Referral")
    ref.append_child(_octet(REFERRAL_URL))
    return ref


def _decoded_op(request, message_id=1):
    return decode_packet(build_envelope(message_id, request).encode()).children[1]


def test_unbind_encoding():
    assert build_envelope(1, UnbindRequest()).encode() == b"\x30\x05\x02\x01\x01\x42\x00"


def test_who_am_i_encoding():
    oid = CONTROL_TYPE_WHO_AM_I.encode()
    expected = b"\x30\x1e\x02\x01\x05\x77\x19\x80\x17" + oid
    assert build_envelope(5, WhoAmIRequest()).encode() == expected


def test_who_am_i_with_controls_adds_controls_child():
    control = new_sequence("Control")
    control.append_child(_octet("1.2.3"))
    envelope = decode_packet(build_envelope(2, WhoAmIRequest(controls=[control])).encode())
    assert len(envelope.children) == 3
    controls = envelope.children[2]
    assert (controls.class_type, controls.tag) == (BerClass.CONTEXT, 0)
    assert controls.children[0].children[0].value == "1.2.3"


@pytest.mark.parametrize(
    "rdn,delete_old,new_sup",
    [
        ("uid=new", True, ""),
        ("uid=new", True, NEW_BASE),
        ("uid=user", True, NEW_BASE),
    ],
)
def test_modify_dn_examples(rdn, delete_old, new_sup):
    op = _decoded_op(ModifyDNRequest(USER_DN, rdn, delete_old, new_sup))
    assert op.class_type == BerClass.APPLICATION
    assert op.tag == Application.MODIFY_DN_REQUEST
    assert op.children[0].value == USER_DN
    assert op.children[1].value == rdn
    assert op.children[2].data == b"\xff"
    if new_sup:
        assert len(op.children) == 4
        assert op.children[3].class_type == BerClass.CONTEXT
        assert op.children[3].tag == 0
        assert op.children[3].data == new_sup.encode()
    else:
        assert len(op.children) == 3


def test_modify_dn_keep_old_rdn_is_false_boolean():
    encoded = build_envelope(1, ModifyDNRequest(USER_DN, "uid=new", False)).encode()
    assert b"\x01\x01\x00" in encoded
    assert decode_packet(encoded).children[1].children[2].value is False


def test_modify_request_changes():
    req = ModifyRequest("cn=a,dc=example,dc=com")
    req.add("mail", ["a@example.com"])
    req.delete("description", [])
    req.replace("sn", ["x", "y"])
    req.increment("counter", "5")
    assert [c.operation for c in req.changes] == [
        ChangeOperation.ADD,
        ChangeOperation.DELETE,
        ChangeOperation.REPLACE,
        ChangeOperation.INCREMENT,
    ]
    op = _decoded_op(req)
    assert op.tag == Application.MODIFY_REQUEST
    assert op.children[0].value == "cn=a,dc=example,dc=com"
    changes = op.children[1].children
    assert [c.children[0].value for c in changes] == [0, 1, 2, 3]
    assert changes[2].children[1].children[0].value == "sn"
    assert [v.value for v in changes[2].children[1].children[1].children] == ["x", "y"]
    assert changes[3].children[1].children[1].children[0].value == "5"


def test_partial_attribute_encoding():
    encoded = PartialAttribute("cn", ["a"]).encode().encode()
    assert encoded == b"\x30\x09\x04\x02cn\x31\x03\x04\x01a"


def test_change_encoding():
    encoded = Change(ChangeOperation.REPLACE, PartialAttribute("cn", [])).encode().encode()
    assert encoded == b"\x30\x0b\x0a\x01\x02\x30\x06\x04\x02cn\x31\x00"


def test_get_referral_non_referral_error():
    err = new_error(ResultCode.NO_SUCH_OBJECT, "missing")
    assert get_referral(err, _response(Application.MODIFY_RESPONSE, 32)) == ""


def test_get_referral_found():
    packet = _response(Application.MODIFY_RESPONSE, 10, extra=[_referral_child()])
    err = new_error(ResultCode.REFERRAL, "ref")
    assert get_referral(err, packet) == REFERRAL_URL


def test_get_referral_wrong_tag():
    packet = _response(Application.SEARCH_RESULT_DONE, 10, extra=[_referral_child()])
    with pytest.raises(ValueError, match="object descriptor"):
        get_referral(new_error(ResultCode.REFERRAL, "ref"), packet)


def test_get_referral_missing():
    packet = _response(Application.MODIFY_RESPONSE, 10)
    with pytest.raises(ValueError, match="couldn't be decoded"):
        get_referral(new_error(ResultCode.REFERRAL, "ref"), packet)


def test_get_referral_too_few_children():
    with pytest.raises(ValueError, match="sufficient child nodes"):
        get_referral(new_error(ResultCode.REFERRAL, "ref"), new_sequence("x"))


def test_parse_modify_response_success_with_controls():
    packet = _response(Application.MODIFY_RESPONSE, 0)
    controls = new_constructed(BerClass.CONTEXT, 0, "Controls")
    control = new_sequence("Control")
    control.append_child(_octet("1.2.840.113556.1.4.319"))
    controls.append_child(control)
    packet.append_child(controls)
    result = parse_modify_response(packet)
    assert result.referral == ""
    assert len(result.controls) == 1
    assert result.controls[0].children[0].value == "1.2.840.113556.1.4.319"


def test_parse_modify_response_error():
    packet = _response(Application.MODIFY_RESPONSE, 32, "dc=example,dc=com", "no such")
    with pytest.raises(LDAPError) as info:
        parse_modify_response(packet)
    assert info.value.result_code == ResultCode.NO_SUCH_OBJECT
    assert info.value.matched_dn == "dc=example,dc=com"
    assert info.value.result.referral == ""


def test_parse_modify_response_referral():
    packet = _response(Application.MODIFY_RESPONSE, 10, extra=[_referral_child()])
    with pytest.raises(LDAPError) as info:
        parse_modify_response(packet)
    assert info.value.result_code == ResultCode.REFERRAL
    assert info.value.result.referral == REFERRAL_URL


def test_parse_modify_response_other_tag_gives_empty_result():
    result = parse_modify_response(_response(Application.ADD_RESPONSE, 0))
    assert (result.controls, result.referral) == ([], "")


def test_parse_modify_response_none():
    with pytest.raises(LDAPError) as info:
        parse_modify_response(None)
    assert info.value.result_code == ResultCode.ERROR_NETWORK


def test_parse_who_am_i_response():
    authz = new_string(BerClass.CONTEXT, TagType.PRIMITIVE, 11, "dn:uid=someone,dc=example,dc=org", "")
    packet = _response(Application.EXTENDED_RESPONSE, 0, extra=[authz])
    assert parse_who_am_i_response(packet).authz_id == "dn:uid=someone,dc=example,dc=org"


def test_parse_who_am_i_response_without_identity():
    assert parse_who_am_i_response(_response(Application.EXTENDED_RESPONSE, 0)).authz_id == ""


def test_parse_who_am_i_unexpected_response():
    with pytest.raises(LDAPError) as info:
        parse_who_am_i_response(_response(Application.BIND_RESPONSE, 0))
    assert info.value.result_code == ResultCode.ERROR_UNEXPECTED_RESPONSE
    assert "Unexpected Response: 1" in str(info.value)


def test_parse_who_am_i_server_error():
    with pytest.raises(LDAPError) as info:
        parse_who_am_i_response(_response(Application.EXTENDED_RESPONSE, 49, "", "bad"))
    assert info.value.result_code == ResultCode.INVALID_CREDENTIALS


def test_application_descriptions():
    moddn_op = build_envelope(1, ModifyDNRequest(USER_DN, "uid=new", True)).children[1]
    assert Application(moddn_op.tag).description == "Modify DN Request"
    unbind_op = build_envelope(2, UnbindRequest()).children[1]
    assert Application(unbind_op.tag).description == "Unbind Request"


def test_packet_is_plain_packet_type():
    op = _decoded_op(UnbindRequest())
    assert isinstance(op, Packet)
    assert (op.class_type, op.tag_type, op.tag) == (
        BerClass.APPLICATION,
        TagType.PRIMITIVE,
        Application.UNBIND_REQUEST,
    )