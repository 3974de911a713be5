"""
Decoding of assembly-level custom attributes.

Custom attribute values are stored as blobs (ECMA-335 II.23.3): a 0x0001
prolog followed by the fixed constructor arguments, laid out according to
the constructor's method signature. Only the first fixed argument is ever
needed here, so only that one is decoded.
"""

import struct
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from dnfile.utils import read_compressed_int

from .exceptions import AttributeDecodeError
from .models import AttributeValues, RawAttribute

# Element types (ECMA-335 II.23.1.16)
ELEMENT_TYPE_VOID = 0x01
ELEMENT_TYPE_BOOLEAN = 0x02
ELEMENT_TYPE_CHAR = 0x03
ELEMENT_TYPE_I1 = 0x04
ELEMENT_TYPE_U1 = 0x05
ELEMENT_TYPE_I2 = 0x06
ELEMENT_TYPE_U2 = 0x07
ELEMENT_TYPE_I4 = 0x08
ELEMENT_TYPE_U4 = 0x09
ELEMENT_TYPE_I8 = 0x0A
ELEMENT_TYPE_U8 = 0x0B
ELEMENT_TYPE_R4 = 0x0C
ELEMENT_TYPE_R8 = 0x0D
ELEMENT_TYPE_STRING = 0x0E
ELEMENT_TYPE_VALUETYPE = 0x11
ELEMENT_TYPE_CLASS = 0x12
ELEMENT_TYPE_SZARRAY = 0x1D
ELEMENT_TYPE_CMOD_REQD = 0x1F
ELEMENT_TYPE_CMOD_OPT = 0x20

SIG_GENERIC = 0x10
CUSTOM_ATTRIBUTE_PROLOG = 0x0001

# Enum arguments are encoded as their underlying type, which is int32 for
# every enum the known attributes take.
_FIXED_FORMATS = {
    ELEMENT_TYPE_BOOLEAN: '<?',
    ELEMENT_TYPE_CHAR: '<H',
    ELEMENT_TYPE_I1: '<b',
    ELEMENT_TYPE_U1: '<B',
    ELEMENT_TYPE_I2: '<h',
    ELEMENT_TYPE_U2: '<H',
    ELEMENT_TYPE_I4: '<i',
    ELEMENT_TYPE_U4: '<I',
    ELEMENT_TYPE_I8: '<q',
    ELEMENT_TYPE_U8: '<Q',
    ELEMENT_TYPE_R4: '<f',
    ELEMENT_TYPE_R8: '<d',
    ELEMENT_TYPE_VALUETYPE: '<i',
}


class BlobReader:
    """Sequential reader over a metadata blob."""

    def __init__(self, data: bytes):
        self.data = bytes(data)
        self.offset = 0

    def read(self, size: int) -> bytes:
        end = self.offset + size
        if size < 0 or end > len(self.data):
            raise AttributeDecodeError(
                f"blob truncated: need {size} bytes at offset {self.offset}, "
                f"have {len(self.data) - self.offset}")
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def read_byte(self) -> int:
        return self.read(1)[0]

    def peek_byte(self) -> int:
        if self.offset >= len(self.data):
            raise AttributeDecodeError("blob truncated: unexpected end of data")
        return self.data[self.offset]

    def unpack(self, fmt: str) -> Any:
        return struct.unpack(fmt, self.read(struct.calcsize(fmt)))[0]

    def read_compressed_uint(self) -> int:
        """Read an ECMA-335 II.23.2 compressed unsigned integer."""
        decoded = read_compressed_int(self.data[self.offset:])
        if decoded is None:
            raise AttributeDecodeError(
                f"invalid or truncated compressed integer at offset {self.offset}")
        value, length = decoded
        self.offset += length
        return value

    def read_ser_string(self) -> Optional[str]:
        """Read a SerString; 0xFF encodes a null string."""
        if self.peek_byte() == 0xFF:
            self.offset += 1
            return None
        length = self.read_compressed_uint()
        raw = self.read(length)
        try:
            return raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise AttributeDecodeError(f"string argument is not valid UTF-8: {e}") from e


def _read_type(reader: BlobReader) -> int:
    """Read a signature type and return its element type."""
    element_type = reader.read_byte()
    while element_type in (ELEMENT_TYPE_CMOD_REQD, ELEMENT_TYPE_CMOD_OPT):
        reader.read_compressed_uint()
        element_type = reader.read_byte()
    if element_type in (ELEMENT_TYPE_VALUETYPE, ELEMENT_TYPE_CLASS):
        reader.read_compressed_uint()
    elif element_type == ELEMENT_TYPE_SZARRAY:
        _read_type(reader)
    return element_type


def constructor_parameter_types(signature: bytes, limit: Optional[int] = None) -> List[int]:
    """
    Parse a constructor's method signature blob.

    Args:
        signature: MethodDefSig/MethodRefSig blob of the attribute constructor
        limit: Stop after this many parameters

    Returns:
        List[int]: Element types of the parameters, in declaration order
    """
    reader = BlobReader(signature)
    calling_convention = reader.read_byte()
    if calling_convention & SIG_GENERIC:
        reader.read_compressed_uint()
    count = reader.read_compressed_uint()
    _read_type(reader)  # return type, void for constructors
    wanted = count if limit is None else min(count, limit)
    return [_read_type(reader) for _ in range(wanted)]


def read_fixed_argument(reader: BlobReader, element_type: int) -> Any:
    """Decode one fixed argument of the given element type."""
    if element_type == ELEMENT_TYPE_STRING:
        return reader.read_ser_string()
    fmt = _FIXED_FORMATS.get(element_type)
    if fmt is None:
        raise AttributeDecodeError(
            f"unsupported argument element type 0x{element_type:02x}")
    value = reader.unpack(fmt)
    if element_type == ELEMENT_TYPE_CHAR:
        return chr(value)
    return value


def decode_fixed_arguments(signature: bytes, blob: bytes, limit: int = 1) -> List[Any]:
    """
    Decode the leading fixed arguments of a custom attribute value.

    Args:
        signature: Constructor signature blob
        blob: Custom attribute value blob
        limit: Maximum number of arguments to decode

    Returns:
        List: Decoded values; empty for a parameterless constructor

    Raises:
        AttributeDecodeError: If either blob is malformed or an argument has
            a type that cannot be decoded
    """
    parameter_types = constructor_parameter_types(signature, limit)
    if not parameter_types:
        return []
    reader = BlobReader(blob)
    prolog = reader.unpack('<H')
    if prolog != CUSTOM_ATTRIBUTE_PROLOG:
        raise AttributeDecodeError(f"bad custom attribute prolog 0x{prolog:04x}")
    return [read_fixed_argument(reader, t) for t in parameter_types]


def _as_text(value: Any) -> str:
    if not isinstance(value, str):
        raise AttributeDecodeError(
            f"expected a string argument, got {type(value).__name__}")
    return value


def _as_debug_modes(value: Any) -> str:
    # bool is an int subclass but comes from the (bool, bool) constructor
    if isinstance(value, bool) or not isinstance(value, int):
        raise AttributeDecodeError(
            f"expected a DebuggingModes argument, got {type(value).__name__}")
    return format(value & 0xFFFFFFFF, 'b')


@dataclass(frozen=True)
class AttributeField:
    """Target field and converter for one known attribute type."""

    name: str
    convert: Callable[[Any], str]


KNOWN_ATTRIBUTES: Dict[str, AttributeField] = {
    "System.Diagnostics.DebuggableAttribute": AttributeField("debug_info", _as_debug_modes),
    "System.Reflection.AssemblyProductAttribute": AttributeField("product", _as_text),
    "System.Reflection.AssemblyTrademarkAttribute": AttributeField("trademark", _as_text),
    "System.Reflection.AssemblyTitleAttribute": AttributeField("title", _as_text),
    "System.Reflection.AssemblyDescriptionAttribute": AttributeField("description", _as_text),
    "System.Reflection.AssemblyCompanyAttribute": AttributeField("company", _as_text),
    "System.Runtime.InteropServices.GuidAttribute": AttributeField("guid", _as_text),
    "System.Reflection.AssemblyCopyrightAttribute": AttributeField("copyright", _as_text),
    "System.Runtime.Versioning.TargetFrameworkAttribute": AttributeField("target_framework", _as_text),
}


def decode_attributes(attributes: Iterable[RawAttribute],
                      path: Optional[str] = None) -> Tuple[AttributeValues, List[AttributeDecodeError]]:
    """
    Decode the known attributes into an AttributeValues record.

    Attributes are visited once, in table order. When a type occurs more
    than once the last occurrence that decodes wins; an occurrence that fails
    to decode leaves the field as it was.

    Args:
        attributes: Raw attributes in metadata table order
        path: Module path, used in error messages

    Returns:
        Tuple of the decoded values and the decode errors encountered
    """
    values: Dict[str, str] = {}
    errors: List[AttributeDecodeError] = []

    for attribute in attributes:
        known = KNOWN_ATTRIBUTES.get(attribute.type_name)
        if known is None:
            continue
        try:
            arguments = decode_fixed_arguments(attribute.signature, attribute.blob)
            if not arguments:
                continue
            values[known.name] = known.convert(arguments[0])
        except AttributeDecodeError as e:
            errors.append(AttributeDecodeError(
                f"cannot decode {attribute.type_name}: {e.message}",
                path=path, attribute=attribute.type_name))

    return AttributeValues(**values), errors
