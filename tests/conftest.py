import pytest

from tixsplit import MarketMaker, Player, SplitSpendInfo
from tixsplit.btctools.key import ECKey
from tixsplit.hashlock import sha256

from test_utils import make_key


@pytest.fixture(scope="session")
def winner_key() -> ECKey:
    return make_key("winner")


@pytest.fixture(scope="session")
def mm_key() -> ECKey:
    return make_key("market maker")


@pytest.fixture(scope="session")
def ticket_preimage() -> bytes:
    return sha256(b"ticket preimage")


@pytest.fixture(scope="session")
def payout_preimage() -> bytes:
    return sha256(b"payout preimage")


@pytest.fixture(scope="session")
def winner(winner_key: ECKey, ticket_preimage: bytes, payout_preimage: bytes) -> Player:
    return Player.from_preimages(winner_key.get_pubkey().get_bytes(), ticket_preimage, payout_preimage)


@pytest.fixture(scope="session")
def market_maker(mm_key: ECKey) -> MarketMaker:
    return MarketMaker(mm_key.get_pubkey().get_bytes())


@pytest.fixture(scope="session")
def split(winner: Player, market_maker: MarketMaker) -> SplitSpendInfo:
    return SplitSpendInfo(winner, market_maker, 100_000, 144)
