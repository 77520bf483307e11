"""
Builds and inspects the taproot contract of a winning player's payout output.

Example session:

    winner pubkey=02... ticket_hash=... payout_hash=...
    mm pubkey=03...
    build amount=100000 delta=144
    show
    weights
    controlblocks

The winner's hashes can also be given as ticket_preimage=... and payout_preimage=..., which are hashed.
Use "keygen" and "preimage" to generate fresh keys and preimages for testing.
"""

import argparse
import logging
import shlex
import sys
import traceback
from typing import Optional

from prompt_toolkit import prompt
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import FileHistory

from tixsplit import MarketMaker, Player, ProtocolError, SplitSpendInfo, SpendPath
from tixsplit.btctools.key import ECKey
from tixsplit.environment import Environment
from tixsplit.hashlock import preimage_from_hex, preimage_random, sha256
from tixsplit.weight import weight_to_vsize


class ActionArgumentCompleter(Completer):
    ACTION_ARGUMENTS = {
        "winner": ["pubkey=", "ticket_hash=", "payout_hash=", "ticket_preimage=", "payout_preimage="],
        "mm": ["pubkey="],
        "build": ["amount=", "delta="],
        "show": [],
        "weights": [],
        "controlblocks": [],
        "preimage": [],
        "keygen": [],
    }

    def get_completions(self, document, complete_event):
        word_before_cursor = document.get_word_before_cursor(WORD=True)

        if ' ' not in document.text:
            # user is typing the action
            for action in self.ACTION_ARGUMENTS.keys():
                if action.startswith(word_before_cursor):
                    yield Completion(action, start_position=-len(word_before_cursor))
        else:
            # user is typing an argument, find which are valid
            action = document.text.split()[0]
            for argument in self.ACTION_ARGUMENTS.get(action, []):
                if argument not in document.text and argument.startswith(word_before_cursor):
                    yield Completion(argument, start_position=-len(word_before_cursor))


class Session:
    def __init__(self, environment: Environment):
        self.environment = environment
        self.winner: Optional[Player] = None
        self.market_maker: Optional[MarketMaker] = None
        self.split: Optional[SplitSpendInfo] = None

    def require_split(self) -> SplitSpendInfo:
        if self.split is None:
            raise ValueError("Build the contract first")
        return self.split


# a hash can be given directly, or as the preimage it commits to
def hash_arg(args_dict: dict, name: str) -> bytes:
    if f"{name}_preimage" in args_dict:
        return sha256(preimage_from_hex(args_dict[f"{name}_preimage"]))
    return bytes.fromhex(args_dict[f"{name}_hash"])


def execute_command(session: Session, input_line: str):
    # consider lines starting with '#' (possibly prefixed with whitespaces) as comments
    if input_line.strip().startswith("#"):
        return

    # Split into a command and the list of arguments
    try:
        input_line_list = shlex.split(input_line)
    except ValueError as e:
        print(f"Invalid command: {str(e)}")
        return

    if not input_line_list:
        return
    action = input_line_list[0].strip()

    args_dict = {}
    for item in input_line_list[1:]:
        parts = item.strip().split('=', 1)
        if len(parts) != 2:
            raise ValueError(f"Invalid argument: {item}")
        param, value = parts
        args_dict[param] = value

    if action not in ActionArgumentCompleter.ACTION_ARGUMENTS:
        print("Invalid action")
        return

    logging.debug("executing %s %s", action, args_dict)

    if action == "winner":
        session.winner = Player(
            bytes.fromhex(args_dict["pubkey"]),
            hash_arg(args_dict, "ticket"),
            hash_arg(args_dict, "payout"),
        )
        session.split = None
        print(session.winner)
    elif action == "mm":
        session.market_maker = MarketMaker(bytes.fromhex(args_dict["pubkey"]))
        session.split = None
        print(session.market_maker)
    elif action == "build":
        if session.winner is None or session.market_maker is None:
            raise ValueError("Set the winner and the market maker first")
        amount = int(args_dict.get("amount", session.environment.payout_value))
        delta = int(args_dict.get("delta", session.environment.round_delay))

        session.split = SplitSpendInfo(session.winner, session.market_maker, amount, delta)
        print(f"scriptPubKey: {session.split.script_pubkey().hex()}")
    elif action == "show":
        split = session.require_split()
        print(f"joint key:    {split.key_agg_ctx_untweaked().aggregated_pubkey().hex()}")
        print(f"output key:   {split.key_agg_ctx_tweaked().xonly_pubkey().hex()}")
        print(f"merkle root:  {split.merkle_root.hex()}")
        print(f"payout value: {split.payout_value()}")
        for path in SpendPath:
            print(f"{path.value} script: {split.script(path)!r}")
    elif action == "weights":
        split = session.require_split()
        for path in SpendPath:
            w = split.predicted_input_weight(path).weight()
            print(f"{path.value}: {w} wu ({weight_to_vsize(w)} vB)")
        w = split.input_weight_for_key_spend().weight()
        print(f"key path: {w} wu ({weight_to_vsize(w)} vB)")
    elif action == "controlblocks":
        split = session.require_split()
        for path in SpendPath:
            print(f"{path.value}: {split.control_block(path).serialize().hex()}")
    elif action == "preimage":
        preimage = preimage_random()
        print(f"preimage: {preimage.hex()}")
        print(f"hash:     {sha256(preimage).hex()}")
    elif action == "keygen":
        key = ECKey()
        key.generate()
        print(f"secret: {key.get_bytes().hex()}")
        print(f"pubkey: {key.get_pubkey().get_bytes().hex()}")


def cli_main(session: Session):
    completer = ActionArgumentCompleter()
    # Create a history object
    history = FileHistory('.cli-history')

    while True:
        try:
            input_line = prompt("₿ ", history=history, completer=completer)
            execute_command(session, input_line)
        except (KeyboardInterrupt, EOFError):
            raise  # exit
        except ProtocolError as err:
            print(f"Error: {err}")
        except Exception as err:
            print(f"Error: {err}")
            print(traceback.format_exc())


def script_main(session: Session, script_file):
    for input_line in script_file:
        try:
            execute_command(session, input_line)
        except Exception as e:
            print(f"Error executing command: {input_line.strip()} - Error: {str(e)}")
            logging.exception("command failed")
            break


if __name__ == "__main__":
    parser = argparse.ArgumentParser()

    # Script file option
    parser.add_argument("--script", "-s", type=str, help="Execute commands from script file")

    # Non-interactive option: read the commands from the standard input
    parser.add_argument("--non-interactive", "-n", action="store_true", help="Read commands from the standard input")

    args = parser.parse_args()

    environment = Environment.from_env(interactive=not args.non_interactive)

    logging.basicConfig(filename=environment.log_file, level=logging.DEBUG)

    session = Session(environment)

    if args.script:
        with open(args.script, "r") as f:
            script_main(session, f)
    elif not environment.interactive:
        script_main(session, sys.stdin)
    else:
        try:
            cli_main(session)
        except (KeyboardInterrupt, EOFError):
            pass  # exit
