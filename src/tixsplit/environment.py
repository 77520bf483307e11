import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .errors import ValidationError

DEFAULT_ROUND_DELAY: int = 144  # about one day of blocks
DEFAULT_PAYOUT_VALUE: int = 100_000
DEFAULT_LOG_FILE: str = "tixsplit-cli.log"


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValidationError(f"{name} must be an integer, got {value!r}") from e


@dataclass
class Environment:
    round_delay: int = DEFAULT_ROUND_DELAY
    payout_value: int = DEFAULT_PAYOUT_VALUE
    log_file: str = DEFAULT_LOG_FILE
    interactive: bool = True

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None, interactive: bool = True) -> 'Environment':
        """
        Reads the configuration from the process environment, after loading the .env file (variables
        that are already set are not overridden).
        """
        load_dotenv(dotenv_path)

        return cls(
            round_delay=_int_from_env("TIXSPLIT_ROUND_DELAY", DEFAULT_ROUND_DELAY),
            payout_value=_int_from_env("TIXSPLIT_PAYOUT_VALUE", DEFAULT_PAYOUT_VALUE),
            log_file=os.getenv("TIXSPLIT_LOG_FILE", DEFAULT_LOG_FILE),
            interactive=interactive,
        )
