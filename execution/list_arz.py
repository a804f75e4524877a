# list_arz.py - prints the records stored in an .arz archive, or its statistics
#
# Licensed under the MIT License.

import sys
import logging
import argparse

from formats.arzcommon import HEADER_SIZE
from gameres.utility import from_file_time, setup_logging
from tqarz.arzreader import ArzReader


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="list_arz", description="List the records of an .arz archive.")
    parser.add_argument("archive", help="path to the .arz file")
    parser.add_argument("--stats", action="store_true", help="print header statistics instead of the record list")
    parser.add_argument("--log", default=None, help="log file path")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def print_stats(reader: ArzReader):
    header = reader.header()
    print(f"records      : {header.record_count}")
    print(f"strings      : {reader.string_count()}")
    print(f"data size    : {header.data_size} bytes")
    print(f"index        : 0x{header.record_index_start:X} ({header.record_index_size} bytes)")
    print(f"string pool  : 0x{header.string_pool_start:X} ({header.string_pool_size} bytes)")
    print(f"header size  : {HEADER_SIZE} bytes")


def print_records(reader: ArzReader):
    for info in reader.record_infos():
        name = reader.record_name(info)
        mtime_ns = from_file_time(info.timestamp)
        print(f"{name}\t{info.record_class}\t{info.compressed_length}\t{mtime_ns}")


def main(args=None) -> int:
    opts = build_parser().parse_args(args)
    setup_logging(opts.log, opts.verbose)

    try:
        reader = ArzReader(opts.archive)
        if opts.stats:
            print_stats(reader)
        else:
            print_records(reader)
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
