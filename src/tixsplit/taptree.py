"""
Taproot script trees (BIP341): leaf and branch hashing, Huffman construction of the tree,
output key tweaking and control blocks.
"""

import heapq
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .btctools.key import TaggedHash, tweak_add_pubkey
from .btctools.script import LEAF_VERSION_TAPSCRIPT, MAX_SCRIPT_SIZE, OP_1, CScript, ser_compact_size
from .errors import TreeBuildError, ValidationError

logger = logging.getLogger(__name__)

TAPROOT_CONTROL_BASE_SIZE = 33
TAPROOT_CONTROL_NODE_SIZE = 32
TAPROOT_CONTROL_MAX_NODE_COUNT = 128


def tapleaf_hash(script: bytes, leaf_version: int = LEAF_VERSION_TAPSCRIPT) -> bytes:
    return TaggedHash("TapLeaf", bytes([leaf_version]) + ser_compact_size(len(script)) + script)


def tapbranch_hash(a: bytes, b: bytes) -> bytes:
    # children are sorted, so the hash of a branch does not depend on the order of its children
    if b < a:
        a, b = b, a
    return TaggedHash("TapBranch", a + b)


def taproot_tweak_hash(internal_key: bytes, merkle_root: Optional[bytes]) -> bytes:
    """The taptweak of an x-only internal key; merkle_root is None for outputs without scripts."""
    if len(internal_key) != 32:
        raise ValueError("internal_key must be an x-only pubkey")
    if merkle_root is not None and len(merkle_root) != 32:
        raise ValueError("merkle_root must be 32 bytes")

    return TaggedHash("TapTweak", internal_key + (merkle_root or b''))


@dataclass(frozen=True)
class LeafInfo:
    script: bytes
    leaf_version: int
    merkle_branch: Tuple[bytes, ...]  # sibling hashes, from the leaf up to the root

    def leaf_hash(self) -> bytes:
        return tapleaf_hash(self.script, self.leaf_version)

    @property
    def depth(self) -> int:
        return len(self.merkle_branch)


class NodeInfo:
    """A node of a taptree under construction, with all the leaves below it."""

    def __init__(self, node_hash: bytes, leaves: List[LeafInfo]):
        self.hash = node_hash
        self.leaves = leaves

    @classmethod
    def new_leaf(cls, script: bytes, leaf_version: int = LEAF_VERSION_TAPSCRIPT) -> 'NodeInfo':
        return cls(tapleaf_hash(script, leaf_version), [LeafInfo(bytes(script), leaf_version, ())])

    @classmethod
    def combine(cls, a: 'NodeInfo', b: 'NodeInfo') -> 'NodeInfo':
        leaves = [LeafInfo(leaf.script, leaf.leaf_version, leaf.merkle_branch + (b.hash,)) for leaf in a.leaves]
        leaves += [LeafInfo(leaf.script, leaf.leaf_version, leaf.merkle_branch + (a.hash,)) for leaf in b.leaves]
        return cls(tapbranch_hash(a.hash, b.hash), leaves)

    def __repr__(self):
        return f"{self.__class__.__name__}(hash={self.hash.hex()}, n_leaves={len(self.leaves)})"


def huffman_tree(weighted_leaves: Iterable[Tuple[int, bytes]], leaf_version: int = LEAF_VERSION_TAPSCRIPT) -> NodeInfo:
    """
    Builds a taptree by repeatedly combining the two lightest nodes, so that leaves with a larger
    weight (expected to be used more often) end up closer to the root.

    Nodes of equal weight are combined in insertion order (leaves in the order given, then the
    branches in the order they are created); both parties of a contract must obtain the same tree.

    Raises:
        TreeBuildError: If there are no leaves, a weight is not a positive integer, or a script is
            larger than MAX_SCRIPT_SIZE.
    """

    queue: List[Tuple[int, int, NodeInfo]] = []
    for seq, (weight, script) in enumerate(weighted_leaves):
        if not isinstance(weight, int) or weight <= 0:
            raise TreeBuildError(f"Invalid weight for leaf {seq}: {weight}")
        if len(script) > MAX_SCRIPT_SIZE:
            raise TreeBuildError(f"Script of leaf {seq} is {len(script)} bytes, more than the limit of {MAX_SCRIPT_SIZE}")
        heapq.heappush(queue, (weight, seq, NodeInfo.new_leaf(script, leaf_version)))

    if len(queue) == 0:
        raise TreeBuildError("Cannot build a taptree without leaves")

    seq = len(queue)
    while len(queue) > 1:
        w1, _, a = heapq.heappop(queue)
        w2, _, b = heapq.heappop(queue)
        heapq.heappush(queue, (w1 + w2, seq, NodeInfo.combine(a, b)))
        seq += 1

    [(_, _, root)] = queue

    if any(leaf.depth > TAPROOT_CONTROL_MAX_NODE_COUNT for leaf in root.leaves):
        raise TreeBuildError("The taptree is too deep")

    return root


@dataclass(frozen=True)
class ControlBlock:
    """
    The control block revealed when spending a taproot output through one of its script leaves.

    Serialized as: <leaf_version | output_key_parity> <internal_key> <merkle_branch...>
    """

    leaf_version: int
    output_key_parity: int
    internal_key: bytes
    merkle_branch: Tuple[bytes, ...]

    def serialize(self) -> bytes:
        return bytes([self.leaf_version | self.output_key_parity]) + self.internal_key + b''.join(self.merkle_branch)

    def size(self) -> int:
        return TAPROOT_CONTROL_BASE_SIZE + TAPROOT_CONTROL_NODE_SIZE * len(self.merkle_branch)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'ControlBlock':
        if len(data) < TAPROOT_CONTROL_BASE_SIZE or (len(data) - TAPROOT_CONTROL_BASE_SIZE) % TAPROOT_CONTROL_NODE_SIZE != 0:
            raise ValidationError(f"Invalid control block size: {len(data)}")

        n_nodes = (len(data) - TAPROOT_CONTROL_BASE_SIZE) // TAPROOT_CONTROL_NODE_SIZE
        if n_nodes > TAPROOT_CONTROL_MAX_NODE_COUNT:
            raise ValidationError(f"Control block has too many nodes: {n_nodes}")

        branch = tuple(
            data[TAPROOT_CONTROL_BASE_SIZE + TAPROOT_CONTROL_NODE_SIZE * i:TAPROOT_CONTROL_BASE_SIZE + TAPROOT_CONTROL_NODE_SIZE * (i + 1)]
            for i in range(n_nodes)
        )
        return cls(data[0] & 0xfe, data[0] & 1, data[1:33], branch)

    def compute_merkle_root(self, script: bytes) -> bytes:
        h = tapleaf_hash(script, self.leaf_version)
        for sibling in self.merkle_branch:
            h = tapbranch_hash(h, sibling)
        return h

    def verify_taproot_commitment(self, output_key: bytes, script: bytes) -> bool:
        """Checks that the script is committed to in the taproot output key, as done when spending it."""
        tweaked = tweak_add_pubkey(self.internal_key, taproot_tweak_hash(self.internal_key, self.compute_merkle_root(script)))
        if tweaked is None:
            return False
        return tweaked == (output_key, bool(self.output_key_parity))

    def __repr__(self):
        return f"{self.__class__.__name__}({self.serialize().hex()})"


class TaprootSpendInfo:
    """
    All the information needed to spend a taproot output: the internal key, the merkle root of the
    script tree, the tweaked output key and the merkle branch of every leaf.
    """

    def __init__(self, internal_key: bytes, root: NodeInfo):
        tweaked = tweak_add_pubkey(internal_key, taproot_tweak_hash(internal_key, root.hash))
        if tweaked is None:
            raise TreeBuildError("Cannot tweak the internal key with this script tree")

        self.internal_key = internal_key
        self.merkle_root = root.hash
        self.output_key, negated = tweaked
        self.output_key_parity = int(negated)

        self._branches: Dict[Tuple[bytes, int], List[Tuple[bytes, ...]]] = {}
        for leaf in root.leaves:
            self._branches.setdefault((leaf.script, leaf.leaf_version), []).append(leaf.merkle_branch)

        logger.debug("taptree with %d leaves, merkle root %s, output key %s",
                     len(root.leaves), self.merkle_root.hex(), self.output_key.hex())

    @classmethod
    def with_huffman_tree(cls, internal_key: bytes, weighted_leaves: Iterable[Tuple[int, bytes]]) -> 'TaprootSpendInfo':
        if len(internal_key) != 32:
            raise TreeBuildError("internal_key must be an x-only pubkey")
        return cls(internal_key, huffman_tree(weighted_leaves))

    @property
    def leaves(self) -> List[Tuple[bytes, int]]:
        return list(self._branches.keys())

    def control_block(self, script: bytes, leaf_version: int = LEAF_VERSION_TAPSCRIPT) -> Optional[ControlBlock]:
        """Returns the control block for the given leaf, or None if the leaf is not in the tree."""
        branches = self._branches.get((bytes(script), leaf_version))
        if not branches:
            return None
        # if a script appears more than once, the shallowest copy is the cheapest to spend
        branch = min(branches, key=len)
        return ControlBlock(leaf_version, self.output_key_parity, self.internal_key, branch)

    def script_pubkey(self) -> CScript:
        return CScript([OP_1, self.output_key])

    def __repr__(self):
        return f"{self.__class__.__name__}(internal_key={self.internal_key.hex()}, merkle_root={self.merkle_root.hex()})"
