"""Persisted Bloom filter record.

The on-disk format is a single JSON object::

    {"m": 958506, "k": 7, "bits": "<base64>", "n": 100000, "p": 0.01,
     "createdAt": "2024-05-01T00:00:00Z"}

``bits`` holds the packed bit array (bit ``i`` is bit ``i % 8`` of byte
``i // 8``). A plain list of 0/1 values of length ``m`` is accepted on load.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Sequence
from datetime import datetime

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_serializer,
    field_validator,
    model_validator,
)


def packed_length(bit_count: int) -> int:
    """Return the number of bytes needed to hold ``bit_count`` bits."""
    return (bit_count + 7) // 8


def pack_bits(values: Sequence[object], bit_count: int) -> bytes:
    """Pack a sequence of 0/1 values into the packed little-endian layout."""
    if len(values) != bit_count:
        raise ValueError(f"bits list length {len(values)} does not match m={bit_count}")
    packed = bytearray(packed_length(bit_count))
    for position, value in enumerate(values):
        if value not in (0, 1) or isinstance(value, float):
            raise ValueError("bits list must only contain 0 or 1")
        if value:
            packed[position >> 3] |= 1 << (position & 7)
    return bytes(packed)


class FilterRecord(BaseModel):
    """Serializable Bloom filter payload with provenance metadata."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    m: int = Field(ge=1)
    k: int = Field(ge=1)
    bits: bytes
    n: int = Field(ge=0)
    p: float = Field(gt=0.0, lt=1.0)
    created_at: datetime = Field(alias="createdAt")

    @field_validator("bits", mode="before")
    @classmethod
    def _decode_bits(cls, value: object, info: ValidationInfo) -> object:
        if isinstance(value, str):
            try:
                return base64.b64decode(value, validate=True)
            except binascii.Error as error:
                raise ValueError("bits must be valid base64") from error
        if isinstance(value, (list, tuple)):
            bit_count = info.data.get("m")
            if not isinstance(bit_count, int):
                raise ValueError("m is required to decode a bits list")
            return pack_bits(value, bit_count)
        return value

    @field_serializer("bits")
    def _encode_bits(self, value: bytes) -> str:
        return base64.b64encode(value).decode("ascii")

    @model_validator(mode="after")
    def _validate_bit_payload(self) -> FilterRecord:
        expected = packed_length(self.m)
        if len(self.bits) != expected:
            raise ValueError(
                f"bits payload is {len(self.bits)} bytes, expected {expected} for m={self.m}"
            )
        return self

    def to_json(self) -> str:
        """Serialize to the canonical JSON form."""
        return self.model_dump_json(by_alias=True)
