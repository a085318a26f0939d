import pytest

from fakes import FakeAggregator, FakeMetadata, FakeRpc, FakeStore, FakeWallet


@pytest.fixture
def metadata() -> FakeMetadata:
    return FakeMetadata()


@pytest.fixture
def aggregator() -> FakeAggregator:
    return FakeAggregator()


@pytest.fixture
def wallet() -> FakeWallet:
    return FakeWallet()


@pytest.fixture
def rpc() -> FakeRpc:
    return FakeRpc()


@pytest.fixture
def store(rpc: FakeRpc) -> FakeStore:
    """Shares the RPC's event log so ordering against confirmation can be asserted."""
    return FakeStore(events=rpc.events)
