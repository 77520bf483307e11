"""
Public key aggregation, as in BIP327 (MuSig2).

Only the key aggregation and tweaking part of MuSig2 is implemented; nonce exchange and partial
signatures belong to the signing session, which consumes the KeyAggContext produced here.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from .btctools.key import (
    SECP256K1, SECP256K1_G, SECP256K1_ORDER,
    Point, TaggedHash, point_from_compressed, point_to_compressed, point_to_xonly
)
from .errors import InternalInvariantViolation, SetupError
from .taptree import taproot_tweak_hash

logger = logging.getLogger(__name__)


def key_sort(pubkeys: Iterable[bytes]) -> List[bytes]:
    """Sorts 33-byte compressed public keys in byte-lexicographic order."""
    return sorted(pubkeys)


def hash_keys(pubkeys: List[bytes]) -> bytes:
    return TaggedHash("KeyAgg list", b''.join(pubkeys))


def get_second_key(pubkeys: List[bytes]) -> bytes:
    for pk in pubkeys[1:]:
        if pk != pubkeys[0]:
            return pk
    return b'\x00' * 33


def key_agg_coeff(pubkeys: List[bytes], pk: bytes) -> int:
    return _key_agg_coeff_internal(hash_keys(pubkeys), get_second_key(pubkeys), pk)


def _key_agg_coeff_internal(keys_hash: bytes, second_key: bytes, pk: bytes) -> int:
    if pk == second_key:
        return 1
    return int.from_bytes(TaggedHash("KeyAgg coefficient", keys_hash + pk), 'big') % SECP256K1_ORDER


class KeyAggContext:
    """
    The result of aggregating a list of public keys, possibly tweaked.

    The aggregate key Q always satisfies Q = gacc * (sum of a_i * P_i) + tacc * G, which lets a
    signing session fold the tweaks into the final signature.

    Instances are immutable: tweaking returns a new context.
    """

    def __init__(self, pubkeys: Tuple[bytes, ...], Q: Point, gacc: int, tacc: int):
        self._pubkeys = pubkeys
        self._Q = SECP256K1.affine(Q)
        if self._Q is None:
            raise SetupError("The aggregate public key is the point at infinity")
        self._gacc = gacc
        self._tacc = tacc

    @property
    def pubkeys(self) -> Tuple[bytes, ...]:
        return self._pubkeys

    @property
    def gacc(self) -> int:
        return self._gacc

    @property
    def tacc(self) -> int:
        return self._tacc

    def aggregated_pubkey(self) -> bytes:
        """The 33-byte compressed aggregate (and possibly tweaked) public key."""
        return point_to_compressed(self._Q)

    def xonly_pubkey(self) -> bytes:
        return point_to_xonly(self._Q)

    def has_even_y(self) -> bool:
        return SECP256K1.has_even_y(self._Q)

    def key_coefficient(self, pubkey: bytes) -> int:
        """Returns the aggregation coefficient a_i of a participant's public key."""
        if pubkey not in self._pubkeys:
            raise ValueError("The public key is not part of this aggregation")
        return key_agg_coeff(list(self._pubkeys), pubkey)

    def with_tweak(self, tweak: bytes, is_xonly: bool) -> 'KeyAggContext':
        """Returns a new context with the tweak applied (ApplyTweak in BIP327)."""
        if len(tweak) != 32:
            raise SetupError("The tweak must be 32 bytes")
        t = int.from_bytes(tweak, 'big')
        if t >= SECP256K1_ORDER:
            raise SetupError("The tweak must be less than the curve order")

        g = SECP256K1_ORDER - 1 if is_xonly and not self.has_even_y() else 1
        Q = SECP256K1.mul([(self._Q, g), (SECP256K1_G, t)])
        if SECP256K1.is_infinity(Q):
            raise SetupError("The tweaked public key is the point at infinity")

        gacc = g * self._gacc % SECP256K1_ORDER
        tacc = (t + g * self._tacc) % SECP256K1_ORDER
        return KeyAggContext(self._pubkeys, Q, gacc, tacc)

    def with_taproot_tweak(self, merkle_root: Optional[bytes]) -> 'KeyAggContext':
        """
        Returns a new context tweaked with the taptweak of the current x-only key and the merkle root
        of a script tree, whose x-only key is therefore the taproot output key.

        The merkle root must be final: a context tweaked with a stale root produces signatures for a
        different output key.
        """
        if merkle_root is None:
            raise InternalInvariantViolation("taproot tweak requires a merkle root")

        return self.with_tweak(taproot_tweak_hash(self.xonly_pubkey(), merkle_root), is_xonly=True)

    def __eq__(self, other):
        if not isinstance(other, KeyAggContext):
            return NotImplemented
        return (self._pubkeys, self._Q, self._gacc, self._tacc) == (other._pubkeys, other._Q, other._gacc, other._tacc)

    def __hash__(self):
        return hash((self._pubkeys, self._Q, self._gacc, self._tacc))

    def __repr__(self):
        return f"{self.__class__.__name__}(aggregated_pubkey={self.aggregated_pubkey().hex()}, n_keys={len(self._pubkeys)})"


def key_agg(pubkeys: List[bytes]) -> KeyAggContext:
    """
    Aggregates the public keys in the given order (KeyAgg in BIP327).

    Raises:
        SetupError: If the list is empty, a key is not a valid compressed point, or the aggregate
            is the point at infinity.
    """

    if len(pubkeys) == 0:
        raise SetupError("Cannot aggregate an empty list of public keys")

    points = []
    for i, pk in enumerate(pubkeys):
        P = point_from_compressed(pk) if isinstance(pk, bytes) else None
        if P is None:
            raise SetupError(f"Invalid public key at index {i}")
        points.append(P)

    keys_hash = hash_keys(pubkeys)
    second_key = get_second_key(pubkeys)
    Q = SECP256K1.mul([(P, _key_agg_coeff_internal(keys_hash, second_key, pk)) for P, pk in zip(points, pubkeys)])
    if SECP256K1.is_infinity(Q):
        raise SetupError("The aggregate public key is the point at infinity")

    return KeyAggContext(tuple(pubkeys), Q, 1, 0)


def aggregate(pubkeys: Iterable[bytes]) -> KeyAggContext:
    """
    Aggregates a set of public keys after sorting them, so that every party computes the same
    joint key regardless of the order in which it learned the keys.

    Raises:
        SetupError: If a key is repeated or invalid, or the aggregation is degenerate.
    """

    pubkeys = list(pubkeys)
    for i, pk in enumerate(pubkeys):
        if not isinstance(pk, bytes):
            raise SetupError(f"Invalid public key at index {i}: expected bytes, got {type(pk).__name__}")
    if len(set(pubkeys)) != len(pubkeys):
        raise SetupError("Duplicate public keys in the aggregation")

    ctx = key_agg(key_sort(pubkeys))
    logger.debug("aggregated %d keys into %s", len(pubkeys), ctx.aggregated_pubkey().hex())
    return ctx
