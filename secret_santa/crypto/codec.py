"""
Codec between a member payload (name, address, note) and an ElGamal plaintext.

Record layout, big-endian throughout:

    tag (1 byte) | body length (4) | len(name) (4) | name | len(address) (4) | address | len(note) (4) | note

The non-zero tag byte means the integer form never loses leading zero
bytes, and the body length pins the record size exactly, so decoding needs
no padding guesswork. A decryption under the wrong key yields an integer
that fails these checks with overwhelming probability.
"""
import struct
from collections import namedtuple

from secret_santa import config
from secret_santa.errors import MalformedPayload, PayloadTooLarge

Payload = namedtuple('Payload', ['name', 'address', 'note'])

RECORD_TAG = 0x53
_LENGTH = struct.Struct('>I')
HEADER_SIZE = 1 + _LENGTH.size
FIELD_OVERHEAD = len(Payload._fields) * _LENGTH.size
FIELD_BUDGET = config.MAX_ENCODED_BYTES - HEADER_SIZE - FIELD_OVERHEAD


def encode(name, address, note):
    """
    Encode three text fields into a single integer below P.

    Args:
        name (str): Member display name
        address (str): Shipping address
        note (str): Free text for the santa

    Returns:
        int: The record interpreted as a big-endian integer

    Raises:
        PayloadTooLarge: if the UTF-8 fields exceed FIELD_BUDGET bytes together
    """
    fields = [name, address, note]
    for field_name, value in zip(Payload._fields, fields):
        if not isinstance(value, str):
            raise TypeError(f"{field_name} must be str, not {type(value).__name__}")
    raw = [value.encode('utf-8') for value in fields]

    sizes = dict(zip(Payload._fields, map(len, raw)))
    if sum(sizes.values()) > FIELD_BUDGET:
        raise PayloadTooLarge(sizes, FIELD_BUDGET)

    body = b''.join(_LENGTH.pack(len(chunk)) + chunk for chunk in raw)
    record = bytes([RECORD_TAG]) + _LENGTH.pack(len(body)) + body
    return int.from_bytes(record, 'big')


def decode(value):
    """
    Decode an integer produced by encode() back into its three fields.

    Raises:
        MalformedPayload: if the integer is not a well-formed record
    """
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise MalformedPayload("not a positive integer")

    data = value.to_bytes((value.bit_length() + 7) // 8, 'big')
    if len(data) > config.MAX_ENCODED_BYTES:
        raise MalformedPayload(f"record of {len(data)} bytes exceeds budget")
    if len(data) < HEADER_SIZE + FIELD_OVERHEAD:
        raise MalformedPayload("record shorter than its header")
    if data[0] != RECORD_TAG:
        raise MalformedPayload("bad record tag")

    (body_length,) = _LENGTH.unpack_from(data, 1)
    body = data[HEADER_SIZE:]
    if body_length != len(body):
        raise MalformedPayload(f"body length {body_length} does not match {len(body)}")

    fields = []
    offset = 0
    for field_name in Payload._fields:
        if offset + _LENGTH.size > len(body):
            raise MalformedPayload(f"truncated before {field_name}")
        (size,) = _LENGTH.unpack_from(body, offset)
        offset += _LENGTH.size
        if offset + size > len(body):
            raise MalformedPayload(f"{field_name} length {size} runs past end of record")
        try:
            fields.append(body[offset:offset + size].decode('utf-8'))
        except UnicodeDecodeError as e:
            raise MalformedPayload(f"{field_name} is not valid UTF-8") from e
        offset += size

    if offset != len(body):
        raise MalformedPayload(f"{len(body) - offset} trailing bytes")
    return Payload(*fields)
