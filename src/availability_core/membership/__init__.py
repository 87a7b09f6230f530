"""Bloom-filter membership index with authoritative fallback.

The index is built offline from a full scan of the authoritative store,
persisted as a JSON record, and loaded read-only by serving processes. It is
never updated incrementally: refreshing means building a new index and
attaching it to the ``MembershipLookup``.
"""

from availability_core.membership.builder import KeySource, build_index_from_source
from availability_core.membership.exceptions import (
    FilterFormatError,
    FilterNotLoadedError,
    MembershipError,
)
from availability_core.membership.index import (
    IndexBuilder,
    IndexMetadata,
    MembershipIndex,
    dump_index,
    load_index,
)
from availability_core.membership.lookup import (
    AuthoritativeStore,
    LookupListener,
    LookupResult,
    LookupStats,
    MembershipLookup,
)
from availability_core.membership.record import FilterRecord
from availability_core.membership.sizing import (
    optimal_bit_count,
    optimal_hash_count,
)

__all__ = [
    "AuthoritativeStore",
    "FilterFormatError",
    "FilterNotLoadedError",
    "FilterRecord",
    "IndexBuilder",
    "IndexMetadata",
    "KeySource",
    "LookupListener",
    "LookupResult",
    "LookupStats",
    "MembershipError",
    "MembershipIndex",
    "MembershipLookup",
    "build_index_from_source",
    "dump_index",
    "load_index",
    "optimal_bit_count",
    "optimal_hash_count",
]
