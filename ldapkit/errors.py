"""LDAP result codes and the exception carrying them."""

from __future__ import annotations

import enum
import json

from .ber import BerClass, Packet, TagType


class ResultCode(enum.IntEnum):
    """LDAP result codes and client-side error codes."""

    SUCCESS = 0
    OPERATIONS_ERROR = 1
    PROTOCOL_ERROR = 2
    TIME_LIMIT_EXCEEDED = 3
    SIZE_LIMIT_EXCEEDED = 4
    COMPARE_FALSE = 5
    COMPARE_TRUE = 6
    AUTH_METHOD_NOT_SUPPORTED = 7
    STRONG_AUTH_REQUIRED = 8
    REFERRAL = 10
    ADMIN_LIMIT_EXCEEDED = 11
    UNAVAILABLE_CRITICAL_EXTENSION = 12
    CONFIDENTIALITY_REQUIRED = 13
    SASL_BIND_IN_PROGRESS = 14
    NO_SUCH_ATTRIBUTE = 16
    UNDEFINED_ATTRIBUTE_TYPE = 17
    INAPPROPRIATE_MATCHING = 18
    CONSTRAINT_VIOLATION = 19
    ATTRIBUTE_OR_VALUE_EXISTS = 20
    INVALID_ATTRIBUTE_SYNTAX = 21
    NO_SUCH_OBJECT = 32
    ALIAS_PROBLEM = 33
    INVALID_DN_SYNTAX = 34
    IS_LEAF = 35
    ALIAS_DEREFERENCING_PROBLEM = 36
    INAPPROPRIATE_AUTHENTICATION = 48
    INVALID_CREDENTIALS = 49
    INSUFFICIENT_ACCESS_RIGHTS = 50
    BUSY = 51
    UNAVAILABLE = 52
    UNWILLING_TO_PERFORM = 53
    LOOP_DETECT = 54
    SORT_CONTROL_MISSING = 60
    OFFSET_RANGE_ERROR = 61
    NAMING_VIOLATION = 64
    OBJECT_CLASS_VIOLATION = 65
    NOT_ALLOWED_ON_NON_LEAF = 66
    NOT_ALLOWED_ON_RDN = 67
    ENTRY_ALREADY_EXISTS = 68
    OBJECT_CLASS_MODS_PROHIBITED = 69
    RESULTS_TOO_LARGE = 70
    AFFECTS_MULTIPLE_DSAS = 71
    VIRTUAL_LIST_VIEW_ERROR_OR_CONTROL_ERROR = 76
    OTHER = 80
    SERVER_DOWN = 81
    LOCAL_ERROR = 82
    ENCODING_ERROR = 83
    DECODING_ERROR = 84
    TIMEOUT = 85
    AUTH_UNKNOWN = 86
    FILTER_ERROR = 87
    USER_CANCELED = 88
    PARAM_ERROR = 89
    NO_MEMORY = 90
    CONNECT_ERROR = 91
    NOT_SUPPORTED = 92
    CONTROL_NOT_FOUND = 93
    NO_RESULTS_RETURNED = 94
    MORE_RESULTS_TO_RETURN = 95
    CLIENT_LOOP = 96
    REFERRAL_LIMIT_EXCEEDED = 97
    INVALID_RESPONSE = 100
    AMBIGUOUS_RESPONSE = 101
    TLS_NOT_SUPPORTED = 112
    INTERMEDIATE_RESPONSE = 113
    UNKNOWN_TYPE = 114
    CANCELED = 118
    NO_SUCH_OPERATION = 119
    TOO_LATE = 120
    CANNOT_CANCEL = 121
    ASSERTION_FAILED = 122
    AUTHORIZATION_DENIED = 123
    SYNC_REFRESH_REQUIRED = 4096

    ERROR_NETWORK = 200
    ERROR_FILTER_COMPILE = 201
    ERROR_FILTER_DECOMPILE = 202
    ERROR_DEBUGGING = 203
    ERROR_UNEXPECTED_MESSAGE = 204
    ERROR_UNEXPECTED_RESPONSE = 205
    ERROR_EMPTY_PASSWORD = 206
    ERROR_USAGE = 207

    @property
    def description(self) -> str:
        """Human readable text for this code, or an empty string."""
        return RESULT_CODE_DESCRIPTIONS.get(int(self), "")


RESULT_CODE_DESCRIPTIONS: dict[int, str] = {
    0: "Success",
    1: "Operations Error",
    2: "Protocol Error",
    3: "Time Limit Exceeded",
    4: "Size Limit Exceeded",
    5: "Compare False",
    6: "Compare True",
    7: "Auth Method Not Supported",
    8: "Strong Auth Required",
    10: "Referral",
    11: "Admin Limit Exceeded",
    12: "Unavailable Critical Extension",
    13: "Confidentiality Required",
    14: "Sasl Bind In Progress",
    16: "No Such Attribute",
    17: "Undefined Attribute Type",
    18: "Inappropriate Matching",
    19: "Constraint Violation",
    20: "Attribute Or Value Exists",
    21: "Invalid Attribute Syntax",
    32: "No Such Object",
    33: "Alias Problem",
    34: "Invalid DN Syntax",
    35: "Is Leaf",
    36: "Alias Dereferencing Problem",
    48: "Inappropriate Authentication",
    49: "Invalid Credentials",
    50: "Insufficient Access Rights",
    51: "Busy",
    52: "Unavailable",
    53: "Unwilling To Perform",
    54: "Loop Detect",
    60: "Sort Control Missing",
    61: "Result Offset Range Error",
    64: "Naming Violation",
    65: "Object Class Violation",
    70: "Results Too Large",
    66: "Not Allowed On Non Leaf",
    67: "Not Allowed On RDN",
    68: "Entry Already Exists",
    69: "Object Class Mods Prohibited",
    71: "Affects Multiple DSAs",
    76: "Failed because of a problem related to the virtual list view",
    80: "Other",
    81: "Cannot establish a connection",
    82: "An error occurred",
    83: "LDAP encountered an error while encoding",
    84: "LDAP encountered an error while decoding",
    85: "LDAP timeout while waiting for a response from the server",
    86: "The auth method requested in a bind request is unknown",
    87: "An error occurred while encoding the given search filter",
    88: "The user canceled the operation",
    89: "An invalid parameter was specified",
    90: "Out of memory error",
    91: "A connection to the server could not be established",
    92: "An attempt has been made to use a feature not supported LDAP",
    93: "The controls required to perform the requested operation were not found",
    94: "No results were returned from the server",
    95: "There are more results in the chain of results",
    96: "A loop has been detected. For example when following referrals",
    97: "The referral hop limit has been exceeded",
    118: "Operation was canceled",
    119: "Server has no knowledge of the operation requested for cancellation",
    120: "Too late to cancel the outstanding operation",
    121: (
        "The identified operation does not support cancellation or the cancel "
        "operation cannot be performed"
    ),
    122: (
        "An assertion control given in the LDAP operation evaluated to false "
        "causing the operation to not be performed"
    ),
    4096: "Refresh Required",
    100: "Invalid Response",
    101: "Ambiguous Response",
    112: "Tls Not Supported",
    113: "Intermediate Response",
    114: "Unknown Type",
    123: "Authorization Denied",
    200: "Network Error",
    201: "Filter Compile Error",
    202: "Filter Decompile Error",
    203: "Debugging Error",
    204: "Unexpected Message",
    205: "Unexpected Response",
    206: "Empty password not allowed by the client",
}


class LDAPError(Exception):
    """An LDAP result code together with the underlying error."""

    def __init__(
        self,
        result_code: int,
        err: BaseException | str,
        matched_dn: str = "",
        packet: Packet | None = None,
    ) -> None:
        self.result_code = int(result_code) & 0xFFFF
        self.err = err
        self.matched_dn = matched_dn
        self.packet = packet
        super().__init__(self._render())
        if isinstance(err, BaseException):
            self.__cause__ = err

    @property
    def description(self) -> str:
        """Human readable text for the result code, or an empty string."""
        return RESULT_CODE_DESCRIPTIONS.get(self.result_code, "")

    def _render(self) -> str:
        return (
            f"LDAP Result Code {self.result_code} "
            f"{json.dumps(self.description)}: {self.err}"
        )

    def __str__(self) -> str:
        return self._render()


def get_ldap_error(packet: Packet | None) -> LDAPError | None:
    """Build an LDAPError from an LDAPMessage packet, or None when it reports success."""
    if packet is None:
        return LDAPError(ResultCode.ERROR_UNEXPECTED_RESPONSE, "Empty packet")

    if len(packet.children) >= 2:
        response = packet.children[1]
        if response is None:
            return LDAPError(
                ResultCode.ERROR_UNEXPECTED_RESPONSE,
                "Empty response in packet",
                packet=packet,
            )
        if (
            response.class_type == BerClass.APPLICATION
            and response.tag_type == TagType.CONSTRUCTED
            and len(response.children) >= 3
        ):
            code = int(response.children[0].value) & 0xFFFF
            if code == ResultCode.SUCCESS:
                return None
            return LDAPError(
                code,
                str(response.children[2].value),
                matched_dn=str(response.children[1].value),
                packet=packet,
            )

    return LDAPError(ResultCode.ERROR_NETWORK, "Invalid packet format", packet=packet)


def new_error(result_code: int, err: BaseException | str) -> LDAPError:
    """Create an LDAPError with the given code and underlying error."""
    return LDAPError(result_code, err)


def is_error_any_of(err: BaseException | None, *args: int) -> bool:
    """Tell whether ``err`` is an LDAPError carrying any of the given codes."""
    if not isinstance(err, LDAPError):
        return False
    return any(err.result_code == code for code in args)


def is_error_with_code(err: BaseException | None, desired_result_code: int) -> bool:
    """Tell whether ``err`` is an LDAPError carrying the given code."""
    return is_error_any_of(err, desired_result_code)