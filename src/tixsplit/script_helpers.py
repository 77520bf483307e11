from .btctools.script import OP_CHECKSEQUENCEVERIFY, OP_CHECKSIG, OP_DROP, OP_EQUALVERIFY, OP_SHA256, CScript


# like the older() fragment in miniscript, leaving nothing on the stack
# BIP68 block-based relative locktimes only use the lower 16 bits of nSequence
def older(n: int) -> CScript:
    assert 1 <= n <= 0xffff

    return CScript([n, OP_CHECKSEQUENCEVERIFY, OP_DROP])


# <preimage> --
def hashlock(h: bytes) -> CScript:
    assert len(h) == 32

    return CScript([OP_SHA256, h, OP_EQUALVERIFY])


# <sig> -- <0 or 1>
def checksig(pubkey: bytes) -> CScript:
    assert len(pubkey) == 32

    return CScript([pubkey, OP_CHECKSIG])
