import pytest

from availability_core.errors import DownstreamOperationError
from availability_core.membership import (
    FilterNotLoadedError,
    IndexBuilder,
    MembershipIndex,
    MembershipLookup,
)
from tests.availability_core.support.runtime_fakes import (
    BrokenStore,
    InMemoryKeyStore,
    RecordingLookupListener,
)

pytestmark = pytest.mark.asyncio


@pytest.fixture
def index() -> MembershipIndex:
    return MembershipIndex.build(["alice", "bob", "carol"], 0.01)


def _saturated_index() -> MembershipIndex:
    builder = IndexBuilder(1, 0.5)
    for position in range(50):
        builder.add(f"filler{position}")
    return builder.finish()


async def test_existing_key_is_a_true_positive(
    user_store: InMemoryKeyStore, index: MembershipIndex
) -> None:
    lookup = MembershipLookup(user_store, index=index)

    result = await lookup.lookup("alice")

    assert result.as_response() == {
        "exists": True,
        "mayExist": True,
        "authoritativeQueried": True,
        "falsePositive": False,
    }
    assert result.available is False
    assert user_store.exists_calls == ["alice"]


async def test_filter_negative_skips_store(
    user_store: InMemoryKeyStore, index: MembershipIndex
) -> None:
    lookup = MembershipLookup(user_store, index=index)

    result = await lookup.lookup("zzz_definitely_not_present_12345")

    assert result.as_response() == {
        "exists": False,
        "mayExist": False,
        "authoritativeQueried": False,
        "falsePositive": False,
    }
    assert result.available is True
    assert user_store.exists_calls == []
    assert lookup.stats.filter_negatives == 1


async def test_false_positive_is_counted_and_reported(
    user_store: InMemoryKeyStore,
) -> None:
    listener = RecordingLookupListener()
    saturated = _saturated_index()
    assert saturated.may_contain("dave")
    lookup = MembershipLookup(user_store, index=saturated, listeners=[listener])

    result = await lookup.lookup("dave")

    assert result.exists is False
    assert result.may_exist is True
    assert result.authoritative_queried is True
    assert result.false_positive is True
    assert lookup.stats.false_positives == 1
    assert lookup.stats.observed_false_positive_rate == 1.0
    assert listener.events == [
        ("checked", True),
        ("queried", False),
        ("false_positive", "dave"),
    ]


async def test_stats_accumulate_across_lookups(
    user_store: InMemoryKeyStore, index: MembershipIndex
) -> None:
    lookup = MembershipLookup(user_store, index=index)

    for key in ["alice", "bob", "zzz_definitely_not_present_12345"]:
        await lookup.lookup(key)

    stats = lookup.stats
    assert stats.filter_checks == 3
    assert stats.store_queries == 2
    assert stats.true_positives == 2
    assert stats.false_positives == 0
    assert stats.filter_negatives == 1
    assert stats.observed_false_positive_rate == 0.0


async def test_lookup_before_load_raises(user_store: InMemoryKeyStore) -> None:
    lookup = MembershipLookup(user_store)

    assert lookup.loaded is False
    with pytest.raises(FilterNotLoadedError):
        await lookup.lookup("alice")
    with pytest.raises(FilterNotLoadedError):
        _ = lookup.index


async def test_attach_installs_rebuilt_index(
    user_store: InMemoryKeyStore, index: MembershipIndex
) -> None:
    lookup = MembershipLookup(user_store)
    lookup.attach(index)

    assert lookup.loaded is True
    assert (await lookup.lookup("carol")).exists is True


async def test_store_failures_propagate(index: MembershipIndex) -> None:
    lookup = MembershipLookup(BrokenStore(), index=index)

    with pytest.raises(DownstreamOperationError):
        await lookup.lookup("alice")

    assert lookup.stats.filter_checks == 1
    assert lookup.stats.store_queries == 0


async def test_non_string_key_is_rejected(
    user_store: InMemoryKeyStore, index: MembershipIndex
) -> None:
    lookup = MembershipLookup(user_store, index=index)

    with pytest.raises(TypeError):
        await lookup.lookup(123)  # type: ignore[arg-type]


async def test_listener_failures_do_not_break_lookups(
    user_store: InMemoryKeyStore, index: MembershipIndex
) -> None:
    class _ExplodingListener:
        async def on_filter_checked(self, may_exist, elapsed):
            raise RuntimeError("boom")

        async def on_store_queried(self, exists, elapsed):
            raise RuntimeError("boom")

        async def on_false_positive(self, key):
            raise RuntimeError("boom")

    recording = RecordingLookupListener()
    lookup = MembershipLookup(
        user_store, index=index, listeners=[_ExplodingListener(), recording]
    )

    result = await lookup.lookup("alice")

    assert result.exists is True
    assert recording.events == [("checked", True), ("queried", True)]
