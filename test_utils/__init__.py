from typing import List

from tixsplit.btctools.key import SECP256K1_ORDER, ECKey
from tixsplit.hashlock import sha256
from tixsplit.musig import KeyAggContext


def make_key(label: str) -> ECKey:
    """A deterministic private key, derived from a label."""
    k = ECKey()
    k.set(sha256(label.encode()))
    assert k.is_valid
    return k


def aggregate_secret(ctx: KeyAggContext, keys: List[ECKey]) -> bytes:
    """
    The secret key of the (possibly tweaked) aggregate key of a context, given the private keys of
    all its participants: gacc * sum(a_i * d_i) + tacc.
    Only useful in tests, as it requires all the private keys in one place.
    """
    by_pubkey = {k.get_pubkey().get_bytes(): k for k in keys}
    s = sum(ctx.key_coefficient(pk) * by_pubkey[pk].secret for pk in ctx.pubkeys)
    return ((ctx.gacc * s + ctx.tacc) % SECP256K1_ORDER).to_bytes(32, 'big')
