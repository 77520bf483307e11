import pytest

from tixsplit import (
    InternalInvariantViolation, MarketMaker, Player, ProtocolError, SetupError, SplitSpendInfo, SpendPath,
    ValidationError, aggregate
)
from tixsplit.btctools.key import ECKey, sign_schnorr, verify_schnorr
from tixsplit.btctools.script import compact_size_len
from tixsplit.hashlock import sha256
from tixsplit.scripts import reclaim_script, sellback_script, win_script
from tixsplit.split import MAX_MONEY
from tixsplit.taptree import tapbranch_hash, tapleaf_hash
from tixsplit.weight import WITNESS_SCALE_FACTOR

from test_utils import aggregate_secret, make_key


def test_script_pubkey(split: SplitSpendInfo):
    spk = split.script_pubkey()

    assert len(spk) == 34
    assert spk[:2] == b'\x51\x20'
    assert spk[2:] == split.key_agg_ctx_tweaked().xonly_pubkey()
    assert spk[2:] == split.spend_info.output_key


def test_scripts(split: SplitSpendInfo, winner: Player, market_maker: MarketMaker):
    assert split.win_script == win_script(winner, 144)
    assert split.reclaim_script == reclaim_script(market_maker, 144)
    assert split.sellback_script == sellback_script(winner, market_maker)

    for path in SpendPath:
        assert split.script(path) == getattr(split, f"{path.value}_script")


def test_merkle_root(split: SplitSpendInfo):
    expected = tapbranch_hash(
        tapleaf_hash(split.sellback_script),
        tapbranch_hash(tapleaf_hash(split.win_script), tapleaf_hash(split.reclaim_script)),
    )
    assert split.merkle_root == expected


def test_key_agg_contexts(split: SplitSpendInfo, winner: Player, market_maker: MarketMaker):
    untweaked = split.key_agg_ctx_untweaked()

    assert untweaked == aggregate([winner.pubkey, market_maker.pubkey])
    assert untweaked.gacc == 1 and untweaked.tacc == 0
    assert split.spend_info.internal_key == untweaked.xonly_pubkey()
    assert split.key_agg_ctx_tweaked() == untweaked.with_taproot_tweak(split.merkle_root)


def test_key_spend(split: SplitSpendInfo, winner_key: ECKey, mm_key: ECKey):
    ctx = split.key_agg_ctx_tweaked()
    msg = sha256(b"cooperative spend")
    sig = sign_schnorr(aggregate_secret(ctx, [winner_key, mm_key]), msg)

    assert verify_schnorr(split.script_pubkey()[2:], sig, msg)


def test_control_blocks(split: SplitSpendInfo):
    output_key = split.script_pubkey()[2:]
    internal_key = split.key_agg_ctx_untweaked().xonly_pubkey()

    for path in SpendPath:
        cb = split.control_block(path)
        assert cb is split.control_blocks[path]
        assert cb.internal_key == internal_key
        assert cb.serialize()[0] & 0xfe == 0xc0
        assert cb.verify_taproot_commitment(output_key, split.script(path))

    # the sellback leaf has the shortest merkle branch
    assert split.control_blocks.sellback.size() == 65
    assert split.control_blocks.win.size() == 97
    assert split.control_blocks.reclaim.size() == 97


def test_control_blocks_are_not_interchangeable(split: SplitSpendInfo):
    output_key = split.script_pubkey()[2:]
    assert not split.control_blocks.sellback.verify_taproot_commitment(output_key, split.win_script)
    assert not split.control_blocks.win.verify_taproot_commitment(output_key, split.sellback_script)


def test_input_weights(split: SplitSpendInfo):
    assert split.input_weight_for_win_tx().weight() == 436
    assert split.input_weight_for_reclaim_tx().weight() == 368
    assert split.input_weight_for_sellback_tx().weight() == 399
    assert split.input_weight_for_key_spend().weight() == 230


@pytest.mark.parametrize("path", list(SpendPath))
def test_input_weight_matches_witness(split: SplitSpendInfo, winner: Player, ticket_preimage: bytes,
                                      payout_preimage: bytes, path: SpendPath):
    preimage = {
        SpendPath.WIN: ticket_preimage,
        SpendPath.RECLAIM: None,
        SpendPath.SELLBACK: payout_preimage,
    }[path]
    witness = split.witness_stack(path, b'\x01' * 64, preimage)

    witness_size = compact_size_len(len(witness)) + sum(compact_size_len(len(e)) + len(e) for e in witness)
    # outpoint, nSequence and an empty scriptSig, scaled, plus the witness
    assert split.predicted_input_weight(path).weight() == (32 + 4 + 4 + 1) * WITNESS_SCALE_FACTOR + witness_size


def test_witness_stack(split: SplitSpendInfo, ticket_preimage: bytes, payout_preimage: bytes):
    sig = b'\x01' * 64

    assert split.witness_stack(SpendPath.WIN, sig, ticket_preimage) == [
        sig, ticket_preimage, split.win_script, split.control_blocks.win.serialize()
    ]
    assert split.witness_stack(SpendPath.RECLAIM, sig) == [
        sig, split.reclaim_script, split.control_blocks.reclaim.serialize()
    ]
    assert split.witness_stack(SpendPath.SELLBACK, sig + b'\x01', payout_preimage) == [
        sig + b'\x01', payout_preimage, split.sellback_script, split.control_blocks.sellback.serialize()
    ]


def test_witness_stack_errors(split: SplitSpendInfo, ticket_preimage: bytes, payout_preimage: bytes):
    sig = b'\x01' * 64

    with pytest.raises(ValidationError):
        split.witness_stack(SpendPath.WIN, sig[:63], ticket_preimage)
    with pytest.raises(ValidationError):
        split.witness_stack(SpendPath.WIN, sig)
    with pytest.raises(ValidationError):
        # the payout preimage does not unlock the win leaf
        split.witness_stack(SpendPath.WIN, sig, payout_preimage)
    with pytest.raises(ValidationError):
        split.witness_stack(SpendPath.SELLBACK, sig, ticket_preimage)
    with pytest.raises(ValidationError):
        split.witness_stack(SpendPath.RECLAIM, sig, ticket_preimage)


def test_is_deterministic(split: SplitSpendInfo, winner: Player, market_maker: MarketMaker):
    other = SplitSpendInfo(winner, market_maker, 100_000, 144)

    assert other.script_pubkey() == split.script_pubkey()
    assert other.merkle_root == split.merkle_root
    assert other.control_blocks == split.control_blocks


def test_payout_value_is_not_committed(split: SplitSpendInfo, winner: Player, market_maker: MarketMaker):
    other = SplitSpendInfo(winner, market_maker, 42, 144)

    assert other.payout_value() == 42
    assert split.payout_value() == 100_000
    assert other.script_pubkey() == split.script_pubkey()


def test_round_delay_changes_timelocked_leaves(split: SplitSpendInfo, winner: Player, market_maker: MarketMaker):
    other = SplitSpendInfo(winner, market_maker, 100_000, 145)

    assert other.key_agg_ctx_untweaked() == split.key_agg_ctx_untweaked()
    assert other.sellback_script == split.sellback_script
    assert other.win_script != split.win_script
    assert other.reclaim_script != split.reclaim_script
    assert other.merkle_root != split.merkle_root
    assert other.script_pubkey() != split.script_pubkey()

    # the scripts stay the same length, so the spending weights do not change
    for path in SpendPath:
        assert other.predicted_input_weight(path) == split.predicted_input_weight(path)


def test_different_winners_get_different_outputs(split: SplitSpendInfo, market_maker: MarketMaker):
    other_winner = Player.from_preimages(
        make_key("another winner").get_pubkey().get_bytes(), b'\x03' * 32, b'\x04' * 32
    )
    other = SplitSpendInfo(other_winner, market_maker, 100_000, 144)

    assert other.script_pubkey() != split.script_pubkey()
    assert other.reclaim_script == split.reclaim_script


@pytest.mark.parametrize("payout_value", [-1, MAX_MONEY + 1, True, 1.5])
def test_invalid_payout_value(winner: Player, market_maker: MarketMaker, payout_value):
    with pytest.raises(ValidationError):
        SplitSpendInfo(winner, market_maker, payout_value, 144)


def test_payout_value_bounds(winner: Player, market_maker: MarketMaker):
    assert SplitSpendInfo(winner, market_maker, 0, 144).payout_value() == 0
    assert SplitSpendInfo(winner, market_maker, MAX_MONEY, 144).payout_value() == MAX_MONEY


def test_invalid_round_delay(winner: Player, market_maker: MarketMaker):
    with pytest.raises(ValidationError):
        SplitSpendInfo(winner, market_maker, 100_000, 0)


def test_same_key_for_both_parties(winner: Player):
    with pytest.raises(SetupError):
        SplitSpendInfo(winner, MarketMaker(winner.pubkey), 100_000, 144)


def test_invalid_pubkey(winner: Player, market_maker: MarketMaker):
    bad_winner = Player(bytes.fromhex("02" + "00" * 31 + "05"), winner.ticket_hash, winner.payout_hash)
    with pytest.raises(SetupError):
        SplitSpendInfo(bad_winner, market_maker, 100_000, 144)


@pytest.mark.parametrize("to_pubkey", [bytearray, bytes.hex])
def test_pubkey_of_wrong_type(winner: Player, market_maker: MarketMaker, to_pubkey):
    bad_winner = Player(to_pubkey(winner.pubkey), winner.ticket_hash, winner.payout_hash)
    with pytest.raises(SetupError):
        SplitSpendInfo(bad_winner, market_maker, 100_000, 144)


def test_invalid_hash(winner: Player, market_maker: MarketMaker):
    bad_winner = Player(winner.pubkey, winner.ticket_hash[:16], winner.payout_hash)
    with pytest.raises(ValidationError):
        SplitSpendInfo(bad_winner, market_maker, 100_000, 144)


def test_error_hierarchy():
    assert issubclass(SetupError, ProtocolError)
    assert issubclass(ValidationError, ProtocolError)
    # broken invariants are bugs, not protocol errors a caller may want to handle
    assert not issubclass(InternalInvariantViolation, ProtocolError)
    assert issubclass(InternalInvariantViolation, AssertionError)
