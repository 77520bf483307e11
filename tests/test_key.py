import pytest

from tixsplit.btctools.key import (
    SECP256K1_FIELD_SIZE, ECPubKey, point_from_compressed, point_from_xonly, point_to_compressed,
    tweak_add_pubkey
)

from test_utils import make_key


@pytest.mark.parametrize("label", ["winner", "market maker", "internal"])
def test_compressed_roundtrip(label: str):
    pubkey = make_key(label).get_pubkey().get_bytes()

    assert point_to_compressed(point_from_compressed(pubkey)) == pubkey
    assert ECPubKey.from_bytes(pubkey).get_xonly_bytes() == pubkey[1:]


def test_both_parities_decode_to_the_same_x():
    pubkey = make_key("winner").get_pubkey().get_bytes()
    flipped = bytes([pubkey[0] ^ 1]) + pubkey[1:]

    assert point_to_compressed(point_from_compressed(flipped)) == flipped
    assert point_to_compressed(point_from_xonly(pubkey[1:]))[0] == 0x02


@pytest.mark.parametrize("data", [
    bytes.fromhex("02" + "00" * 31 + "05"),  # x not on the curve
    b'\x02' + SECP256K1_FIELD_SIZE.to_bytes(32, 'big'),  # x not a field element
    b'\x04' + make_key("winner").get_pubkey().get_bytes()[1:],  # not a compressed encoding
    make_key("winner").get_pubkey().get_bytes()[:32],  # truncated
])
def test_invalid_compressed(data: bytes):
    assert point_from_compressed(data) is None
    assert not ECPubKey.from_bytes(data).is_valid


def test_tweak_add_pubkey_invalid_key():
    assert tweak_add_pubkey(bytes.fromhex("00" * 31 + "05"), b'\x01' * 32) is None
