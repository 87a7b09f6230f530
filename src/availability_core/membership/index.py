"""Read-only Bloom filter used as a pre-filter in front of an authoritative store."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from availability_core.membership.exceptions import FilterFormatError
from availability_core.membership.record import FilterRecord, packed_length
from availability_core.membership.sizing import (
    optimal_bit_count,
    optimal_hash_count,
)

_MASK_64 = (1 << 64) - 1


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _bit_positions(key: str, bit_count: int, hash_count: int) -> Iterator[int]:
    """Yield ``hash_count`` double-hashed positions in ``[0, bit_count)``."""
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=16).digest()
    h1 = int.from_bytes(digest[:8], "little")
    h2 = int.from_bytes(digest[8:], "little") | 1
    for round_ in range(hash_count):
        yield ((h1 + round_ * h2) & _MASK_64) % bit_count


def _require_str(key: object) -> str:
    if not isinstance(key, str):
        raise TypeError(f"membership keys must be str, got {type(key).__name__}")
    return key


@dataclass(frozen=True)
class IndexMetadata:
    """Provenance of a built filter.

    Attributes:
        n: Number of keys inserted at build time.
        p: Target false-positive probability the filter was sized for.
        created_at: UTC timestamp of the build.
    """

    n: int
    p: float
    created_at: datetime


class IndexBuilder:
    """Single-writer accumulator for one offline build pass."""

    def __init__(self, expected_items: int, false_positive_rate: float) -> None:
        """Size an empty bit array for ``expected_items`` keys.

        Args:
            expected_items: Exact key count or an upstream estimate.
            false_positive_rate: Target probability in ``(0, 1)``.
        """
        self.bit_count = optimal_bit_count(expected_items, false_positive_rate)
        self.hash_count = optimal_hash_count(self.bit_count, expected_items)
        self.expected_items = expected_items
        self.false_positive_rate = false_positive_rate
        self.inserted = 0
        self._bits = bytearray(packed_length(self.bit_count))

    def add(self, key: str) -> None:
        for position in _bit_positions(_require_str(key), self.bit_count, self.hash_count):
            self._bits[position >> 3] |= 1 << (position & 7)
        self.inserted += 1

    def add_all(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.add(key)

    def finish(self, *, created_at: datetime | None = None) -> MembershipIndex:
        """Freeze the accumulated bits; ``n`` becomes the actual inserted count."""
        return MembershipIndex(
            bit_count=self.bit_count,
            hash_count=self.hash_count,
            bits=bytes(self._bits),
            metadata=IndexMetadata(
                n=self.inserted,
                p=self.false_positive_rate,
                created_at=_utcnow() if created_at is None else created_at,
            ),
        )


class MembershipIndex:
    """Immutable Bloom filter answering "definitely absent" or "maybe present".

    A ``False`` answer is exact for every key inserted at build time. A
    ``True`` answer is wrong with probability close to ``metadata.p`` while
    the live key count stays near ``metadata.n``; keys added to the
    authoritative store after the build are not reflected until a rebuild.
    Lookups never mutate the index and need no synchronization.
    """

    __slots__ = ("_bits", "_k", "_m", "metadata")

    def __init__(
        self,
        *,
        bit_count: int,
        hash_count: int,
        bits: bytes,
        metadata: IndexMetadata,
    ) -> None:
        if bit_count < 1:
            raise ValueError("bit_count must be >= 1")
        if hash_count < 1:
            raise ValueError("hash_count must be >= 1")
        if len(bits) != packed_length(bit_count):
            raise ValueError("bits length does not match bit_count")
        self._m = bit_count
        self._k = hash_count
        self._bits = bytes(bits)
        self.metadata = metadata

    @classmethod
    def build(
        cls,
        keys: Iterable[str],
        false_positive_rate: float,
        *,
        expected_items: int | None = None,
        created_at: datetime | None = None,
    ) -> MembershipIndex:
        """Build an index from the full key set in one pass.

        Args:
            keys: Every key present in the authoritative store.
            false_positive_rate: Target probability in ``(0, 1)``.
            expected_items: Optional size estimate. When omitted, ``keys`` is
                materialized and counted before sizing.
            created_at: Build timestamp. Defaults to now; pass a fixed value
                for reproducible serialized output.

        Returns:
            A read-only index whose ``metadata.n`` is the inserted key count.
        """
        if expected_items is None:
            keys = list(keys)
            expected_items = len(keys)
        builder = IndexBuilder(expected_items, false_positive_rate)
        builder.add_all(keys)
        return builder.finish(created_at=created_at)

    @classmethod
    def load(cls, source: FilterRecord | Mapping[str, object] | str | bytes) -> MembershipIndex:
        """Rebuild an index from a persisted record without rescanning the store.

        Raises:
            FilterFormatError: If the payload is not a valid filter record.
        """
        if isinstance(source, FilterRecord):
            record = source
        else:
            try:
                if isinstance(source, (str, bytes)):
                    record = FilterRecord.model_validate_json(source)
                else:
                    record = FilterRecord.model_validate(source)
            except ValidationError as error:
                raise FilterFormatError(f"invalid filter record: {error}") from error
        return cls(
            bit_count=record.m,
            hash_count=record.k,
            bits=record.bits,
            metadata=IndexMetadata(n=record.n, p=record.p, created_at=record.created_at),
        )

    @property
    def bit_count(self) -> int:
        return self._m

    @property
    def hash_count(self) -> int:
        return self._k

    @property
    def bits(self) -> bytes:
        return self._bits

    def may_contain(self, key: str) -> bool:
        """Return ``False`` if ``key`` is definitely absent, ``True`` if it may exist.

        Raises:
            TypeError: If ``key`` is not a ``str``.
        """
        bits = self._bits
        for position in _bit_positions(_require_str(key), self._m, self._k):
            if not bits[position >> 3] & (1 << (position & 7)):
                return False
        return True

    def __contains__(self, key: object) -> bool:
        return self.may_contain(key)  # type: ignore[arg-type]

    def fill_ratio(self) -> float:
        """Fraction of bits set to one."""
        return int.from_bytes(self._bits, "little").bit_count() / self._m

    def estimated_false_positive_rate(self) -> float:
        """False-positive probability implied by the current fill ratio."""
        return self.fill_ratio() ** self._k

    def to_record(self) -> FilterRecord:
        return FilterRecord(
            m=self._m,
            k=self._k,
            bits=self._bits,
            n=self.metadata.n,
            p=self.metadata.p,
            created_at=self.metadata.created_at,
        )

    def __repr__(self) -> str:
        return (
            f"MembershipIndex(m={self._m}, k={self._k}, n={self.metadata.n}, "
            f"p={self.metadata.p:g})"
        )


def dump_index(index: MembershipIndex, path: str | Path) -> Path:
    """Write ``index`` to ``path`` as a JSON filter record."""
    target = Path(path)
    target.write_text(index.to_record().to_json(), encoding="utf-8")
    return target


def load_index(path: str | Path) -> MembershipIndex:
    """Load an index previously written by ``dump_index``.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        FilterFormatError: If the file content is not a valid filter record.
    """
    return MembershipIndex.load(Path(path).read_bytes())
