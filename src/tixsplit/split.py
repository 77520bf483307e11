"""
The taproot contract of a winning player's payout output in the split transaction.

The output commits to three script leaves:

1. win: a relative-timelocked hash-lock paying to the player if they know their ticket preimage,
   after one round of block delay;
2. reclaim: a relative timelock paying to the market maker after two rounds of block delay;
3. sellback: a hash-lock paying to the market maker immediately, once it learns the payout preimage
   from the player.

The internal key is the MuSig2 aggregate of the player's and the market maker's keys, so the
output can also be spent cooperatively through the key path.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from .btctools.script import CScript
from .errors import InternalInvariantViolation, ValidationError
from .hashlock import PREIMAGE_SIZE, sha256
from .musig import KeyAggContext, aggregate
from .parties import MarketMaker, Player
from .scripts import reclaim_script, sellback_script, win_script
from .taptree import ControlBlock, TaprootSpendInfo
from .weight import P2TR_KEY_DEFAULT_SIGHASH, SCHNORR_SIGNATURE_SIZE, InputWeightPrediction

logger = logging.getLogger(__name__)

MAX_MONEY = 21_000_000 * 100_000_000

# Relative weights of the leaves in the Huffman tree: the sellback leaf is expected to be used
# far more often than the others, so it gets the shortest merkle branch.
SELLBACK_WEIGHT = 2
WIN_WEIGHT = 1
RECLAIM_WEIGHT = 1


class SpendPath(Enum):
    WIN = "win"
    RECLAIM = "reclaim"
    SELLBACK = "sellback"

    @property
    def needs_preimage(self) -> bool:
        return self is not SpendPath.RECLAIM


@dataclass(frozen=True)
class SplitControlBlocks:
    """The control blocks of the three leaves, all computed when the contract is built."""

    win: ControlBlock
    reclaim: ControlBlock
    sellback: ControlBlock

    def __getitem__(self, path: SpendPath) -> ControlBlock:
        return getattr(self, path.value)


def _leaf_control_block(spend_info: TaprootSpendInfo, script: CScript, name: str) -> ControlBlock:
    control_block = spend_info.control_block(script)
    if control_block is None:
        raise InternalInvariantViolation(f"{name} script cannot be missing from the taptree")
    return control_block


class SplitSpendInfo:
    """
    The spending conditions of one player's payout output.

    Both the player and the market maker build this from the same inputs, and obtain exactly the
    same keys, scripts and output. Instances are immutable.
    """

    def __init__(self, winner: Player, market_maker: MarketMaker, payout_value: int, block_delta: int):
        """
        Parameters:
            winner (Player): The player the output pays to.
            market_maker (MarketMaker): The counterparty.
            payout_value (int): The amount of the output, in satoshis.
            block_delta (int): The length in blocks of one round of relative timelock.

        Raises:
            SetupError: If the public keys cannot be aggregated.
            ValidationError: If a hash, public key, amount or delay is malformed.
            TreeBuildError: If the taptree cannot be built.
        """

        if not isinstance(payout_value, int) or isinstance(payout_value, bool) or not 0 <= payout_value <= MAX_MONEY:
            raise ValidationError(f"Invalid payout value: {payout_value}")

        untweaked_ctx = aggregate([market_maker.pubkey, winner.pubkey])
        joint_payout_pubkey = untweaked_ctx.xonly_pubkey()

        win = win_script(winner, block_delta)
        reclaim = reclaim_script(market_maker, block_delta)
        sellback = sellback_script(winner, market_maker)

        spend_info = TaprootSpendInfo.with_huffman_tree(
            joint_payout_pubkey,
            [
                (SELLBACK_WEIGHT, sellback),
                (WIN_WEIGHT, win),
                (RECLAIM_WEIGHT, reclaim),
            ]
        )

        tweaked_ctx = untweaked_ctx.with_taproot_tweak(spend_info.merkle_root)
        if tweaked_ctx.xonly_pubkey() != spend_info.output_key:
            raise InternalInvariantViolation("the tweaked aggregate key does not match the taproot output key")

        self._untweaked_ctx = untweaked_ctx
        self._tweaked_ctx = tweaked_ctx
        self._payout_value = payout_value
        self._spend_info = spend_info
        self._winner = winner
        self._scripts = {
            SpendPath.WIN: win,
            SpendPath.RECLAIM: reclaim,
            SpendPath.SELLBACK: sellback,
        }
        self._control_blocks = SplitControlBlocks(
            win=_leaf_control_block(spend_info, win, "win"),
            reclaim=_leaf_control_block(spend_info, reclaim, "reclaim"),
            sellback=_leaf_control_block(spend_info, sellback, "sellback"),
        )

        logger.debug("split output for player %s: %s", winner.pubkey.hex(), self.script_pubkey().hex())

    def key_agg_ctx_untweaked(self) -> KeyAggContext:
        return self._untweaked_ctx

    def key_agg_ctx_tweaked(self) -> KeyAggContext:
        return self._tweaked_ctx

    def script_pubkey(self) -> CScript:
        """Returns the locking script of the player's output in the split transaction."""
        return self._spend_info.script_pubkey()

    def payout_value(self) -> int:
        return self._payout_value

    @property
    def winner(self) -> Player:
        return self._winner

    @property
    def spend_info(self) -> TaprootSpendInfo:
        return self._spend_info

    @property
    def merkle_root(self) -> bytes:
        return self._spend_info.merkle_root

    @property
    def control_blocks(self) -> SplitControlBlocks:
        return self._control_blocks

    @property
    def win_script(self) -> CScript:
        return self._scripts[SpendPath.WIN]

    @property
    def reclaim_script(self) -> CScript:
        return self._scripts[SpendPath.RECLAIM]

    @property
    def sellback_script(self) -> CScript:
        return self._scripts[SpendPath.SELLBACK]

    def script(self, path: SpendPath) -> CScript:
        return self._scripts[path]

    def control_block(self, path: SpendPath) -> ControlBlock:
        return self._control_blocks[path]

    def predicted_input_weight(self, path: SpendPath) -> InputWeightPrediction:
        """
        Computes the weight of an input spending this output through the leaf of the given path.

        The witness stack is <sig> [<preimage>] <script> <control_block>, where the preimage is the
        ticket preimage for the win path, the payout preimage for the sellback path, and absent for
        the reclaim path.
        """

        script = self._scripts[path]
        element_lengths = [SCHNORR_SIGNATURE_SIZE]
        if path.needs_preimage:
            element_lengths.append(PREIMAGE_SIZE)
        element_lengths += [len(script), self._control_blocks[path].size()]

        return InputWeightPrediction.new(0, element_lengths)

    def input_weight_for_win_tx(self) -> InputWeightPrediction:
        return self.predicted_input_weight(SpendPath.WIN)

    def input_weight_for_reclaim_tx(self) -> InputWeightPrediction:
        return self.predicted_input_weight(SpendPath.RECLAIM)

    def input_weight_for_sellback_tx(self) -> InputWeightPrediction:
        return self.predicted_input_weight(SpendPath.SELLBACK)

    def input_weight_for_key_spend(self) -> InputWeightPrediction:
        """Weight of a cooperative spend, signed with the tweaked aggregate key."""
        return P2TR_KEY_DEFAULT_SIGHASH

    def witness_stack(self, path: SpendPath, signature: bytes, preimage: Optional[bytes] = None) -> List[bytes]:
        """
        Assembles the witness stack spending this output through the leaf of the given path.

        Raises:
            ValidationError: If the signature has the wrong size, or the preimage is missing,
                unexpected, or does not match the hash committed to in the script.
        """

        if len(signature) not in (SCHNORR_SIGNATURE_SIZE, SCHNORR_SIGNATURE_SIZE + 1):
            raise ValidationError(f"Invalid signature size: {len(signature)}")

        if path.needs_preimage:
            if preimage is None or len(preimage) != PREIMAGE_SIZE:
                raise ValidationError(f"A {PREIMAGE_SIZE}-byte preimage is required for the {path.value} path")
            expected_hash = self._winner.ticket_hash if path is SpendPath.WIN else self._winner.payout_hash
            if sha256(preimage) != expected_hash:
                raise ValidationError(f"The preimage does not match the {path.value} hash")
            stack = [signature, preimage]
        else:
            if preimage is not None:
                raise ValidationError(f"No preimage is needed for the {path.value} path")
            stack = [signature]

        return stack + [bytes(self._scripts[path]), self._control_blocks[path].serialize()]

    def __repr__(self):
        return f"{self.__class__.__name__}(winner={self._winner}, payout_value={self._payout_value}, script_pubkey={self.script_pubkey().hex()})"
