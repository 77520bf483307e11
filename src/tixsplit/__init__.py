from .errors import InternalInvariantViolation, ProtocolError, SetupError, TreeBuildError, ValidationError
from .hashlock import PREIMAGE_SIZE
from .musig import KeyAggContext, aggregate
from .parties import MarketMaker, Player
from .split import SplitControlBlocks, SplitSpendInfo, SpendPath
from .taptree import ControlBlock, TaprootSpendInfo
from .weight import InputWeightPrediction, predict_weight

__all__ = [
    "ControlBlock",
    "InputWeightPrediction",
    "InternalInvariantViolation",
    "KeyAggContext",
    "MarketMaker",
    "PREIMAGE_SIZE",
    "Player",
    "ProtocolError",
    "SetupError",
    "SplitControlBlocks",
    "SplitSpendInfo",
    "SpendPath",
    "TaprootSpendInfo",
    "TreeBuildError",
    "ValidationError",
    "aggregate",
    "predict_weight",
]
