from dataclasses import dataclass

from .hashlock import sha256


@dataclass(frozen=True)
class Player:
    """
    A ticketholding player that won an outcome and is owed a payout.

    Attributes:
        pubkey (bytes): The player's 33-byte compressed public key.
        ticket_hash (bytes): SHA256 of the ticket preimage, which the player learns by buying the ticket.
        payout_hash (bytes): SHA256 of the payout preimage, which the player reveals when selling the
            payout back to the market maker.
    """

    pubkey: bytes
    ticket_hash: bytes
    payout_hash: bytes

    @classmethod
    def from_preimages(cls, pubkey: bytes, ticket_preimage: bytes, payout_preimage: bytes) -> 'Player':
        return cls(pubkey, sha256(ticket_preimage), sha256(payout_preimage))

    def __repr__(self):
        return f"Player(pubkey={self.pubkey.hex()}, ticket_hash={self.ticket_hash.hex()}, payout_hash={self.payout_hash.hex()})"


@dataclass(frozen=True)
class MarketMaker:
    """The counterparty that funds the contract and buys back payouts; shared by all the players of a round."""

    pubkey: bytes

    def __repr__(self):
        return f"MarketMaker(pubkey={self.pubkey.hex()})"
