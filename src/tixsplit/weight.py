"""
Prediction of transaction weights, used to compute the fees of the transactions spending a payout
output before they can be signed.

All the weights are in weight units (wu): non-witness bytes count 4, witness bytes count 1.
"""

from dataclasses import dataclass
from typing import Iterable, Tuple

from .btctools.script import compact_size_len

WITNESS_SCALE_FACTOR = 4

# outpoint (32-byte txid, 4-byte index) and nSequence
TXIN_BASE_SIZE = 32 + 4 + 4

SCHNORR_SIGNATURE_SIZE = 64


@dataclass(frozen=True)
class InputWeightPrediction:
    """
    The predicted weight of a transaction input, given the length of its scriptSig and the length
    of each element of its witness stack.

    The weight includes the outpoint and nSequence, the scriptSig with its length prefix, and the
    witness with the number of elements and the length prefix of each of them.
    """

    input_script_len: int
    witness_element_lengths: Tuple[int, ...]

    @classmethod
    def new(cls, input_script_len: int, witness_element_lengths: Iterable[int]) -> 'InputWeightPrediction':
        return cls(input_script_len, tuple(witness_element_lengths))

    @property
    def script_size(self) -> int:
        return compact_size_len(self.input_script_len) + self.input_script_len

    @property
    def witness_size(self) -> int:
        if len(self.witness_element_lengths) == 0:
            return 0
        return compact_size_len(len(self.witness_element_lengths)) + sum(
            compact_size_len(n) + n for n in self.witness_element_lengths
        )

    @property
    def has_witness(self) -> bool:
        return len(self.witness_element_lengths) > 0

    def weight(self) -> int:
        return (TXIN_BASE_SIZE + self.script_size) * WITNESS_SCALE_FACTOR + self.witness_size


# Spending a taproot output through the key path, with SIGHASH_DEFAULT
P2TR_KEY_DEFAULT_SIGHASH = InputWeightPrediction.new(0, [SCHNORR_SIGNATURE_SIZE])

# Spending a taproot output through the key path, with an explicit sighash flag
P2TR_KEY_NON_DEFAULT_SIGHASH = InputWeightPrediction.new(0, [SCHNORR_SIGNATURE_SIZE + 1])


def predict_weight(inputs: Iterable[InputWeightPrediction], output_script_lens: Iterable[int]) -> int:
    """
    Predicts the weight of a whole transaction, given the predictions of its inputs and the
    lengths of the scriptPubKeys of its outputs.
    """

    inputs = list(inputs)
    output_script_lens = list(output_script_lens)

    outputs_size = sum(8 + compact_size_len(n) + n for n in output_script_lens)
    non_input_size = (
        4  # nVersion
        + compact_size_len(len(inputs))
        + compact_size_len(len(output_script_lens))
        + outputs_size
        + 4  # nLockTime
    )
    weight = non_input_size * WITNESS_SCALE_FACTOR + sum(inp.weight() for inp in inputs)

    n_with_witness = sum(1 for inp in inputs if inp.has_witness)
    if n_with_witness > 0:
        # segwit marker and flag, and an empty witness for each input without one
        weight += 2 + (len(inputs) - n_with_witness)
    return weight


def weight_to_vsize(weight: int) -> int:
    return (weight + WITNESS_SCALE_FACTOR - 1) // WITNESS_SCALE_FACTOR
