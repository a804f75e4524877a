# unpack_arz.py - extracts every record of an .arz archive to plain .dbr text files
#
# Licensed under the MIT License.

import os
import sys
import time
import logging
import argparse

from tqdm import tqdm

from gameres.gameres import ArzError, MissingSchemaReferenceError
from gameres.utility import DbrTextSaver, setup_logging
from tqarz.arzreader import ArzReader


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="unpack_arz", description="Extract an .arz archive to .dbr files.")
    parser.add_argument("archive", help="path to the .arz file")
    parser.add_argument("output", nargs="?", default=None, help="output folder (default: <archive>_dbr)")
    parser.add_argument("--log", default=None, help="log file path")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def run_serial_unpack(reader: ArzReader, output_dir: str):
    saved, skipped, failed = 0, 0, 0
    infos = list(reader.record_infos())
    for info in tqdm(infos, desc="extracting", unit="record"):
        try:
            record = reader.record(info)
            DbrTextSaver.save(record, output_dir)
        except MissingSchemaReferenceError as e:
            logging.warning(f"[unpack] skipping: {e}")
            skipped += 1
            continue
        except ArzError as e:
            logging.error(f"[unpack] record at offset 0x{info.offset:X}: {e}")
            failed += 1
            continue
        saved += 1
    return saved, skipped, failed


def main(args=None) -> int:
    opts = build_parser().parse_args(args)
    setup_logging(opts.log, opts.verbose)

    try:
        output_dir = opts.output or os.path.splitext(opts.archive)[0] + "_dbr"
        reader = ArzReader(opts.archive)

        start = time.time()
        saved, skipped, failed = run_serial_unpack(reader, output_dir)
        elapsed = time.time() - start
        print(f"[done] {saved} records extracted to {output_dir} in {elapsed:.2f}s ({skipped} skipped, {failed} failed)")
        return 1 if failed else 0

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
