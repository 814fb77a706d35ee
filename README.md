# ldapkit

Building blocks for LDAP messages (RFC 4511) in Python: a small BER
encoder and decoder, a compiler for RFC 4515 search filters, request
objects for search, modify, modify-DN, unbind and "Who Am I?", parsers
for their responses, search result entries, and LDAP result errors.

ldapkit has no runtime dependencies.

## Install

```
pip install ldapkit
```

## Modules

- `ldapkit.ber` – `Packet`, `BerClass`, `TagType`, `Tag`, the builders
  `new_string`, `new_integer`, `new_boolean`, `new_constructed`,
  `new_sequence`, and `decode_packet`.
- `ldapkit.errors` – `ResultCode`, `LDAPError`, `get_ldap_error`,
  `new_error`, `is_error_any_of`, `is_error_with_code`.
- `ldapkit.filter` – `compile_filter`, `decompile_filter`, `escape_filter`,
  `decode_escaped_symbols`, and the tag enums `FilterChoice`,
  `SubstringChoice`, `MatchingRuleAssertion`.
- `ldapkit.requests` – `ModifyRequest`, `ModifyDNRequest`, `UnbindRequest`,
  `WhoAmIRequest`, `build_envelope`, `get_referral`,
  `parse_modify_response`, `parse_who_am_i_response`, and the `Application`
  and `ChangeOperation` enums.
- `ldapkit.entry` – `SearchRequest`, `SearchResult`, `Entry`,
  `EntryAttribute`, `new_entry`, `new_entry_attribute`,
  `unpack_attributes`, and the `Scope` and `DerefAliases` enums.

## Search filters

```python
from ldapkit.filter import compile_filter, decompile_filter, escape_filter

packet = compile_filter("(&(sn=Miller)(givenName=Bob))")
print(decompile_filter(packet))          # (&(sn=Miller)(givenName=Bob))

print(escape_filter("a*b(c)"))           # a\2ab\28c\29
```

Malformed filters raise `ldapkit.errors.LDAPError` with the result code
`ResultCode.ERROR_FILTER_COMPILE`; a packet that cannot be rendered raises
one with `ResultCode.ERROR_FILTER_DECOMPILE`.

## BER packets

```python
from ldapkit.ber import BerClass, Tag, TagType, decode_packet, new_integer, new_sequence

seq = new_sequence("LDAP Request")
seq.append_child(new_integer(BerClass.UNIVERSAL, TagType.PRIMITIVE, Tag.INTEGER, 1, "MessageID"))
data = seq.encode()
again = decode_packet(data)
```

`decode_packet` raises `ValueError` on malformed input.

## Requests

Each request object has an `append_to(envelope)` method;
`build_envelope(message_id, request)` wraps it in an LDAPMessage packet
ready to be encoded.

```python
from ldapkit.entry import DerefAliases, Scope, SearchRequest
from ldapkit.requests import ModifyDNRequest, ModifyRequest, build_envelope

modify = ModifyRequest("uid=someone,dc=example,dc=org")
modify.replace("mail", ["someone@example.com"])
wire = build_envelope(1, modify).encode()

rename = ModifyDNRequest("uid=user,ou=people,dc=example,dc=org", "uid=new", True, "")
search = SearchRequest(
    "dc=example,dc=org",
    scope=Scope.WHOLE_SUBTREE,
    deref_aliases=DerefAliases.ALWAYS,
    filter="(objectClass=*)",
    attributes=["cn"],
)
wire = build_envelope(2, search).encode()
```

Controls are passed as already encoded `Packet` objects in a request's
`controls` list.

## Responses and entries

- `get_ldap_error(packet)` turns an LDAPResult message into an `LDAPError`,
  or returns `None` on success.
- `parse_modify_response(packet)` returns a `ModifyResult`, or raises the
  reported `LDAPError` with the partial result (and any referral) attached
  as its `result` attribute.
- `parse_who_am_i_response(packet)` returns a `WhoAmIResult` holding
  `authz_id`.
- `SearchResult.add_packet(packet)` takes one decoded response message and
  returns `True` once the SearchResultDone has arrived; it raises the
  `LDAPError` of a failing search.
- `Entry` gives access to attribute values, case-sensitive or not, and
  `Entry.unmarshal` fills a dataclass instance from an entry's attributes
  (field names, or `metadata={"ldap": "name"}`; types `str`, `list[str]`,
  `int`, `bytes`; the name `dn` receives the entry's DN).

```python
from ldapkit.entry import new_entry

entry = new_entry("cn=mario,dc=example,dc=com", {"cn": ["mario"]})
entry.get_equal_fold_attribute_value("CN")   # "mario"
```

## What ldapkit does not do

ldapkit builds and reads LDAP messages only. It does not open connections,
bind, send requests or wait for responses, and it has no paging loop or
command-line tool; the caller moves the encoded bytes over the network and
passes decoded packets back in. Controls are neither built nor decoded
beyond plain BER packets.

## Tests

```
pip install -e ".[test]"
pytest
```