"""
The tapscript leaves of a player's payout output.

Each leaf is a fixed sequence of fragments; both the player and the market maker compute the
scripts independently, so any change here changes the contract's address.
"""

from .btctools.key import ECPubKey
from .btctools.script import CScript
from .errors import ValidationError
from .hashlock import check_hash
from .parties import MarketMaker, Player
from .script_helpers import checksig, hashlock, older

# Both timelocks must be representable as a block-based relative locktime
MAX_BLOCK_DELTA = 0xffff // 2


def check_block_delta(block_delta: int) -> int:
    if not isinstance(block_delta, int) or isinstance(block_delta, bool):
        raise ValidationError("block_delta must be an integer")
    if not 1 <= block_delta <= MAX_BLOCK_DELTA:
        raise ValidationError(f"block_delta must be between 1 and {MAX_BLOCK_DELTA}, got {block_delta}")
    return block_delta


def xonly_pubkey(pubkey: bytes, name: str = "pubkey") -> bytes:
    """Returns the x-only serialization of a 33-byte compressed public key."""
    if not isinstance(pubkey, bytes):
        raise ValidationError(f"{name} must be bytes")
    pk = ECPubKey.from_bytes(pubkey)
    if not pk.is_valid:
        raise ValidationError(f"{name} is not a valid compressed public key")
    return pk.get_xonly_bytes()


def win_script(winner: Player, block_delta: int) -> CScript:
    """
    Used by a ticketholding winner to claim the payout on-chain if the market maker doesn't
    cooperate, after one round of block delay.

    Witness: <player_sig> <ticket_preimage>
    """
    return CScript([
        *older(check_block_delta(block_delta)),
        *hashlock(check_hash(winner.ticket_hash, "ticket_hash")),
        *checksig(xonly_pubkey(winner.pubkey, "winner pubkey")),
    ])


def reclaim_script(market_maker: MarketMaker, block_delta: int) -> CScript:
    """
    Used by the market maker to reclaim its capital if the player never paid for the ticket
    preimage, after two rounds of block delay.

    Witness: <mm_sig>
    """
    return CScript([
        *older(2 * check_block_delta(block_delta)),
        *checksig(xonly_pubkey(market_maker.pubkey, "market maker pubkey")),
    ])


def sellback_script(winner: Player, market_maker: MarketMaker) -> CScript:
    """
    Used by the market maker to take the output immediately once the player sold the payout back,
    revealing the payout preimage.

    Witness: <mm_sig> <payout_preimage>
    """
    return CScript([
        *hashlock(check_hash(winner.payout_hash, "payout_hash")),
        *checksig(xonly_pubkey(market_maker.pubkey, "market maker pubkey")),
    ])
