import hashlib

import pytest

from tixsplit import ControlBlock, TaprootSpendInfo, TreeBuildError, ValidationError
from tixsplit.btctools.key import tweak_add_pubkey
from tixsplit.btctools.script import MAX_SCRIPT_SIZE, OP_CHECKSIG, CScript
from tixsplit.taptree import huffman_tree, tapbranch_hash, tapleaf_hash, taproot_tweak_hash

from test_utils import make_key


def tagged_hash(tag: str, data: bytes) -> bytes:
    tag_hash = hashlib.sha256(tag.encode()).digest()
    return hashlib.sha256(tag_hash + tag_hash + data).digest()


def pk_script(label: str) -> CScript:
    return CScript([make_key(label).get_pubkey().get_xonly_bytes(), OP_CHECKSIG])


@pytest.fixture(scope="module")
def internal_key() -> bytes:
    return make_key("internal").get_pubkey().get_xonly_bytes()


def test_tapleaf_hash():
    script = pk_script("A")
    assert tapleaf_hash(script) == tagged_hash("TapLeaf", b'\xc0' + bytes([len(script)]) + script)


def test_tapbranch_hash_is_symmetric():
    a = tapleaf_hash(pk_script("A"))
    b = tapleaf_hash(pk_script("B"))
    assert tapbranch_hash(a, b) == tapbranch_hash(b, a)
    assert tapbranch_hash(a, b) == tagged_hash("TapBranch", min(a, b) + max(a, b))


def test_taproot_tweak_hash(internal_key: bytes):
    root = tapleaf_hash(pk_script("A"))
    assert taproot_tweak_hash(internal_key, root) == tagged_hash("TapTweak", internal_key + root)
    assert taproot_tweak_hash(internal_key, None) == tagged_hash("TapTweak", internal_key)

    with pytest.raises(ValueError):
        taproot_tweak_hash(internal_key, root[:31])


def depths(root) -> dict:
    return {leaf.script: leaf.depth for leaf in root.leaves}


def test_huffman_single_leaf():
    script = pk_script("A")
    root = huffman_tree([(1, script)])
    assert root.hash == tapleaf_hash(script)
    assert depths(root) == {script: 0}


def test_huffman_depths():
    A, B, C, D, E = (pk_script(label) for label in "ABCDE")
    root = huffman_tree([(5, A), (4, B), (3, C), (2, D), (1, E)])

    assert depths(root) == {A: 2, B: 2, C: 2, D: 3, E: 3}

    hA, hB, hC, hD, hE = (tapleaf_hash(s) for s in (A, B, C, D, E))
    assert root.hash == tapbranch_hash(tapbranch_hash(hA, hB), tapbranch_hash(hC, tapbranch_hash(hD, hE)))


def test_huffman_unbalanced():
    A, B, C, D, E, F = (pk_script(label) for label in "ABCDEF")
    root = huffman_tree([(1, A), (1, B), (1, C), (1, D), (3, E), (6, F)])

    assert depths(root) == {A: 4, B: 4, C: 4, D: 4, E: 2, F: 1}


def test_huffman_heavier_leaf_is_shallower():
    heavy, light1, light2 = pk_script("heavy"), pk_script("light1"), pk_script("light2")
    root = huffman_tree([(2, heavy), (1, light1), (1, light2)])

    assert depths(root) == {heavy: 1, light1: 2, light2: 2}
    h, l1, l2 = (tapleaf_hash(s) for s in (heavy, light1, light2))
    assert root.hash == tapbranch_hash(h, tapbranch_hash(l1, l2))


def test_huffman_is_deterministic():
    leaves = [(2, pk_script("A")), (1, pk_script("B")), (1, pk_script("C")), (1, pk_script("D"))]
    assert huffman_tree(leaves).hash == huffman_tree(list(leaves)).hash


def test_huffman_errors():
    with pytest.raises(TreeBuildError):
        huffman_tree([])
    with pytest.raises(TreeBuildError):
        huffman_tree([(0, pk_script("A"))])
    with pytest.raises(TreeBuildError):
        huffman_tree([(-1, pk_script("A"))])
    with pytest.raises(TreeBuildError):
        huffman_tree([(1, pk_script("A")), (1, b'\x00' * (MAX_SCRIPT_SIZE + 1))])

    # the size limit is inclusive
    huffman_tree([(1, b'\x00' * MAX_SCRIPT_SIZE)])


def test_spend_info(internal_key: bytes):
    A, B, C = pk_script("A"), pk_script("B"), pk_script("C")
    info = TaprootSpendInfo.with_huffman_tree(internal_key, [(2, A), (1, B), (1, C)])

    tweaked = tweak_add_pubkey(internal_key, taproot_tweak_hash(internal_key, info.merkle_root))
    assert tweaked == (info.output_key, bool(info.output_key_parity))
    assert info.script_pubkey() == b'\x51\x20' + info.output_key
    assert sorted(info.leaves) == sorted([(A, 0xc0), (B, 0xc0), (C, 0xc0)])

    for script, expected_size in [(A, 65), (B, 97), (C, 97)]:
        cb = info.control_block(script)
        assert cb.size() == expected_size
        assert len(cb.serialize()) == expected_size
        assert cb.serialize()[0] == 0xc0 | info.output_key_parity
        assert cb.internal_key == internal_key
        assert cb.compute_merkle_root(script) == info.merkle_root
        assert cb.verify_taproot_commitment(info.output_key, script)

    assert info.control_block(pk_script("D")) is None
    assert not info.control_block(A).verify_taproot_commitment(info.output_key, B)


def test_spend_info_invalid_internal_key():
    with pytest.raises(TreeBuildError):
        TaprootSpendInfo.with_huffman_tree(b'\x02' * 33, [(1, pk_script("A"))])


def test_control_block_from_bytes(internal_key: bytes):
    branch = (b'\x11' * 32, b'\x22' * 32)
    cb = ControlBlock(0xc0, 1, internal_key, branch)
    data = cb.serialize()

    assert data == b'\xc1' + internal_key + b'\x11' * 32 + b'\x22' * 32
    assert ControlBlock.from_bytes(data) == cb


@pytest.mark.parametrize("size", [0, 32, 34, 33 + 31, 33 + 32 * 129])
def test_control_block_invalid_size(size: int):
    with pytest.raises(ValidationError):
        ControlBlock.from_bytes(b'\xc0' * size)
