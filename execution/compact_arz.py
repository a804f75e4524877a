# compact_arz.py - rewrites an .arz archive in place
#
# Licensed under the MIT License.
#
# Drops duplicate record entries and unreachable bytes between records. The
# record payloads are copied as stored; nothing is re-encoded.

import os
import sys
import logging
import argparse

from gameres.gameres import RecordParseError, RecordParser
from gameres.utility import setup_logging
from tqarz.arzmanager import ArzManager


class NoSourceParser(RecordParser):
    """Placeholder for managers that never sync from source files."""

    def parse(self, path):
        raise RecordParseError(f"no record parser configured, cannot read {path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="compact_arz", description="Rewrite an .arz archive in place.")
    parser.add_argument("archive", help="path to the .arz file")
    parser.add_argument("--log", default=None, help="log file path")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(args=None) -> int:
    opts = build_parser().parse_args(args)
    setup_logging(opts.log, opts.verbose)

    try:
        if not os.path.isfile(opts.archive):
            print(f"[error] file does not exist: {opts.archive}")
            return 1

        before = os.path.getsize(opts.archive)
        with ArzManager(opts.archive, os.path.dirname(os.path.abspath(opts.archive)), NoSourceParser()) as manager:
            manager.rewrite()
            count = len(manager)
        after = os.path.getsize(opts.archive)
        print(f"[done] {count} records, {before} -> {after} bytes")
        return 0

    except KeyboardInterrupt:
        print("\n[cancelled] interrupted by user")
        logging.warning("[main] interrupted (Ctrl+C)")
        return 130

    except Exception as e:
        logging.exception(f"[main] {e}")
        print(f"[error] {e}")
        return 1

    finally:
        logging.shutdown()


if __name__ == "__main__":
    sys.exit(main())
