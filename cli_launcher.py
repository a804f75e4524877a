# cli_launcher.py - single entry point dispatching to the execution/ commands
#
# Licensed under the MIT License.

import os
import sys
import argparse

base_dir = os.path.dirname(os.path.abspath(__file__))
if base_dir not in sys.path:
    sys.path.insert(0, base_dir)

from execution import compact_arz, list_arz, unpack_arz

COMMANDS = {
    "list": (list_arz.main, "list the records of an archive"),
    "stats": (lambda rest: list_arz.main(["--stats"] + rest), "print archive header statistics"),
    "unpack": (unpack_arz.main, "extract every record to .dbr text"),
    "compact": (compact_arz.main, "rewrite an archive in place"),
}


def print_banner():
    banner = r"""
  TQ ARZ database tool
  -------------------------------
    """
    print(banner)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cli_launcher", description="Titan Quest .arz database tool")
    parser.add_argument(
        "command",
        choices=sorted(COMMANDS),
        help="; ".join(f"{name}: {help_text}" for name, (_, help_text) in sorted(COMMANDS.items())),
    )
    parser.add_argument("rest", nargs=argparse.REMAINDER, help="arguments for the command (use '<command> -h')")
    return parser


def main(args=None) -> int:
    opts = build_parser().parse_args(args)
    print_banner()
    handler, _ = COMMANDS[opts.command]
    return handler(opts.rest)


if __name__ == "__main__":
    sys.exit(main())
