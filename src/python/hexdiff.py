#!/usr/bin/env python3
"""
Hexadecimal Differencing

Compares two binary files byte for byte and prints them as side-by-side
hex + ASCII dumps.  Both files are read in lockstep, one row of bytes at a
time; bytes that match are drawn in green and bytes that differ in red.
A run of identical rows is collapsed into a single "..." line.

The comparison is strictly positional: there is no alignment and no
detection of inserted or deleted bytes.  When one file ends first, its
last row is padded with zero bytes and compared against the other as-is.

Output layout (one side, 4 bytes per row):

  0x0000000010  de ad be ef  ....

Usage:
  python hexdiff.py [options] file1 file2 [skip1 [skip2]]

  -a, --show-all       print every matching row instead of collapsing runs
  -s, --skip-same      never print matching rows, only the "..." marker
  -d, --dense          no spaces between hex bytes
  -n, --max-bytes N    stop after N bytes per file (0 = until end of file)
  -c, --columns N      bytes per row, 1-256
  -w, --width N        fit rows to an N-character display (default: terminal)
"""

import argparse
import os
import signal
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Callable, Iterator, List, Optional, Sequence, Tuple


# ============================================================================
# ANSI colors
# ============================================================================

ANSI_GREEN = "\x1b[32m"
ANSI_RED = "\x1b[31m"
ANSI_RESET = "\x1b[0m"


class Directive(Enum):
    """Color change emitted in front of a byte.  NONE keeps the current color."""
    NONE = ""
    EQUAL = ANSI_GREEN
    DIFF = ANSI_RED
    RESET = ANSI_RESET


# ============================================================================
# Layout
#
# One side of a row is
#
#   "0x" + 10 offset digits + 2 spaces      offset label
#   2 hex digits per byte (+ 1 space)       hex block (dense drops the space)
#   1 space                                 gap
#   1 character per byte                    ASCII block
#
# and the two sides are joined by SIDE_GAP.
# ============================================================================

MIN_COLUMNS = 1
MAX_COLUMNS = 256
DEFAULT_COLUMNS = 16

OFFSET_DIGITS = 10
OFFSET_WIDTH = 2 + OFFSET_DIGITS + 2
HEX_ASCII_GAP = " "
SIDE_GAP = "    "
PLACEHOLDER = "...\n"


def _hex_cell_width(dense: bool) -> int:
    return 2 if dense else 3


def line_length(columns: int, dense: bool) -> int:
    """Printed width of a full two-sided row, escape codes excluded."""
    side = OFFSET_WIDTH + columns * _hex_cell_width(dense) + len(HEX_ASCII_GAP) + columns
    return 2 * side + len(SIDE_GAP)


def compute_row_width(display_width: int, dense: bool) -> int:
    """Largest row width whose rendered line fits in display_width characters.

    A display width of 0 means the width is unknown; DEFAULT_COLUMNS is
    returned.  The result is clamped to [MIN_COLUMNS, MAX_COLUMNS], so a
    display too narrow for even one byte still gets one.
    """
    if not display_width:
        return DEFAULT_COLUMNS
    fixed = line_length(0, dense)
    per_byte = line_length(1, dense) - fixed
    columns = (display_width - fixed) // per_byte
    return max(MIN_COLUMNS, min(MAX_COLUMNS, columns))


# ============================================================================
# Row classification
# ============================================================================

def rows_equal(chunk1: bytes, chunk2: bytes) -> bool:
    """True if the two chunks match at every position."""
    return chunk1 == chunk2


def equality_mask(chunk1: bytes, chunk2: bytes) -> List[bool]:
    return [a == b for a, b in zip(chunk1, chunk2)]


# ============================================================================
# Color runs
#
# A differing row is drawn twice per side: once as hex bytes, once as ASCII.
# Both passes replay the same directive list left to right and only write an
# escape code where the directive is not NONE, so a run of same-colored bytes
# costs one escape code instead of one per byte.
#
# The hex pass starts right after the offset label, which is always red.  The
# ASCII pass starts right after the last hex byte, so it inherits that byte's
# color.  Position 0 therefore needs no code of its own exactly when both it
# and the last position differ.
# ============================================================================

def compress_colors(mask: Sequence[bool]) -> List[Directive]:
    """Turn a per-byte equality mask into the minimal list of color changes.

    Replaying the result from a red starting color gives every byte the
    color it would get if each byte were colored individually.
    """
    if not mask:
        return []
    intended = [Directive.EQUAL if same else Directive.DIFF for same in mask]
    current = intended[0]
    if current == Directive.DIFF and intended[-1] == Directive.DIFF:
        directives = [Directive.NONE]
    else:
        directives = [current]
    for color in intended[1:]:
        if color == current:
            directives.append(Directive.NONE)
        else:
            directives.append(color)
            current = color
    return directives


# ============================================================================
# Rendering
# ============================================================================

def printable(chunk: bytes) -> str:
    """ASCII column text: bytes outside 0x20-0x7e are shown as '.'."""
    return "".join(chr(b) if 0x20 <= b <= 0x7e else "." for b in chunk)


def render_row(offset: int, chunk: bytes,
               directives: Optional[Sequence[Directive]] = None,
               dense: bool = False) -> str:
    """Format one side of a row: offset label, hex bytes, ASCII column.

    Without directives the side is plain text and takes whatever color is
    current.  With directives the offset label is drawn red and each hex
    byte and ASCII character is preceded by its directive's escape code.
    """
    sep = "" if dense else " "
    label = f"0x{offset:0{OFFSET_DIGITS}x}  "
    text = printable(chunk)
    if directives is None:
        hexes = "".join(f"{b:02x}{sep}" for b in chunk)
        return label + hexes + HEX_ASCII_GAP + text

    hexes = "".join(f"{d.value}{b:02x}{sep}" for d, b in zip(directives, chunk))
    chars = "".join(d.value + c for d, c in zip(directives, text))
    return Directive.DIFF.value + label + hexes + HEX_ASCII_GAP + chars


def render_same(offset1: int, offset2: int, chunk1: bytes, chunk2: bytes,
                dense: bool = False) -> str:
    return (Directive.RESET.value
            + render_row(offset1, chunk1, dense=dense)
            + SIDE_GAP
            + render_row(offset2, chunk2, dense=dense)
            + Directive.RESET.value + "\n")


def render_diff(offset1: int, offset2: int, chunk1: bytes, chunk2: bytes,
                dense: bool = False, mask: Optional[Sequence[bool]] = None) -> str:
    if mask is None:
        mask = equality_mask(chunk1, chunk2)
    directives = compress_colors(mask)
    return (render_row(offset1, chunk1, directives, dense)
            + SIDE_GAP
            + render_row(offset2, chunk2, directives, dense)
            + Directive.RESET.value + "\n")


def render_header(columns: int, dense: bool = False) -> str:
    """Column header naming the offset, each byte position and each ASCII cell.

    Dense mode has only two characters per byte, so it labels positions with
    a single hex digit under the low nibble.
    """
    if dense:
        labels = "".join(f" {i % 16:x}" for i in range(columns))
    else:
        labels = "".join(f"{i % 256:02x} " for i in range(columns))
    cells = "".join(f"{i % 16:x}" for i in range(columns))
    side = f"{'offset':^{OFFSET_WIDTH - 2}}  " + labels + HEX_ASCII_GAP + cells
    return Directive.RESET.value + side + SIDE_GAP + side + "\n"


# ============================================================================
# Diff engine
# ============================================================================

@dataclass
class HexDiffOptions:
    """Options for a comparison run."""
    columns: int = DEFAULT_COLUMNS
    dense: bool = False
    show_all: bool = False
    skip_same: bool = False
    max_bytes: int = 0          # 0 = no limit
    header: bool = True
    verbose: bool = False


@dataclass
class DiffStats:
    rows: int = 0
    diff_rows: int = 0
    diff_bytes: int = 0
    read1: int = 0
    read2: int = 0
    cancelled: bool = False


class CancelToken:
    """Stop request checked by the engine between rows.

    cancel() accepts and ignores extra arguments so the bound method can be
    installed directly as a signal handler.
    """

    def __init__(self):
        self.cancelled = False

    def cancel(self, *_args) -> None:
        self.cancelled = True


def read_chunk(fp: BinaryIO, size: int) -> Tuple[bytes, int]:
    """Read one row from fp, zero-padded to size.

    Returns (chunk, n) where n is the number of bytes actually read; n < size
    only at end of input.
    """
    data = b""
    while len(data) < size:
        part = fp.read(size - len(data))
        if not part:
            break
        data += part
    return data.ljust(size, b"\0"), len(data)


def diff_rows(fp1: BinaryIO, fp2: BinaryIO, opts: HexDiffOptions,
              skip1: int = 0, skip2: int = 0,
              cancel: Optional[CancelToken] = None,
              stats: Optional[DiffStats] = None) -> Iterator[str]:
    """Compare fp1 and fp2 row by row, yielding complete output lines.

    skip1 and skip2 are only added to the printed offsets; the streams must
    already be positioned.  The first matching row of a run is printed, the
    second becomes "..." and the rest print nothing.  show_all prints every
    row; skip_same turns the first row of a run into "..." as well.

    The loop ends after the first short read, when max_bytes have been
    compared, or when cancel is set.  Cancellation is only checked before a
    row is read, so every yielded line is whole.
    """
    width = opts.columns
    if not MIN_COLUMNS <= width <= MAX_COLUMNS:
        raise ValueError(f"row width must be {MIN_COLUMNS}-{MAX_COLUMNS}, got {width}")
    if stats is None:
        stats = DiffStats()

    cnt = 0
    eq_run = 0
    final = False
    while not final and (opts.max_bytes == 0 or cnt < opts.max_bytes):
        if cancel is not None and cancel.cancelled:
            stats.cancelled = True
            break

        chunk1, n1 = read_chunk(fp1, width)
        chunk2, n2 = read_chunk(fp2, width)
        stats.read1 += n1
        stats.read2 += n2
        if n1 < width or n2 < width:
            final = True
            if n1 == 0 and n2 == 0:
                break
        stats.rows += 1

        if rows_equal(chunk1, chunk2):
            if opts.show_all or (eq_run == 0 and not opts.skip_same):
                yield render_same(skip1 + cnt, skip2 + cnt, chunk1, chunk2, opts.dense)
            elif eq_run == (0 if opts.skip_same else 1):
                yield PLACEHOLDER
            eq_run += 1
        else:
            stats.diff_rows += 1
            mask = equality_mask(chunk1, chunk2)
            stats.diff_bytes += mask.count(False)
            yield render_diff(skip1 + cnt, skip2 + cnt, chunk1, chunk2, opts.dense, mask)
            eq_run = 0

        cnt += width


def _print_stats(stats: DiffStats) -> None:
    state = "cancelled" if stats.cancelled else "done"
    print(f"hexdiff: {state}: {stats.rows:,} rows, {stats.diff_rows:,} differ "
          f"({stats.diff_bytes:,} bytes); read {stats.read1:,} + {stats.read2:,} bytes",
          file=sys.stderr)


def hexdiff(fp1: BinaryIO, fp2: BinaryIO, write: Callable[[str], object],
            opts: HexDiffOptions, skip1: int = 0, skip2: int = 0,
            cancel: Optional[CancelToken] = None) -> DiffStats:
    """Write the header (if enabled) and every output line of fp1 vs fp2."""
    if opts.verbose:
        limit = f"{opts.max_bytes:,} bytes" if opts.max_bytes else "none"
        print(f"hexdiff: {opts.columns} bytes/row, dense={opts.dense}, "
              f"skip=0x{skip1:x}/0x{skip2:x}, limit={limit}", file=sys.stderr)

    stats = DiffStats()
    if opts.header:
        write(render_header(opts.columns, opts.dense))
    for line in diff_rows(fp1, fp2, opts, skip1, skip2, cancel, stats):
        write(line)
    if stats.cancelled:
        write(Directive.RESET.value)

    if opts.verbose:
        _print_stats(stats)
    return stats


# ============================================================================
# File I/O helpers
# ============================================================================

@contextmanager
def open_at(path: str, offset: int):
    """Open path for binary reading, positioned at offset.

    Exits with an error message naming the path (and offset) if the file
    cannot be opened or the seek fails.  The file is closed on every path.
    """
    try:
        f = open(path, 'rb')
    except OSError as e:
        raise SystemExit(f"error: cannot open {path}: {e.strerror or e}")
    try:
        try:
            f.seek(offset)
        except OSError as e:
            raise SystemExit(
                f"error: cannot seek to 0x{offset:x} in {path}: {e.strerror or e}"
            )
        yield f
    finally:
        f.close()


# ============================================================================
# CLI helpers
# ============================================================================

def _parse_size(s: str) -> int:
    """Parse a byte count: decimal, 0x-prefixed hex, or decimal with k/M/G suffix."""
    s = s.strip()
    if not s:
        raise argparse.ArgumentTypeError("empty size value")
    multipliers = {'k': 1_000, 'K': 1_000, 'm': 1_000_000, 'M': 1_000_000,
                   'g': 1_000_000_000, 'G': 1_000_000_000}
    try:
        if s[:2].lower() == '0x':
            value = int(s, 16)
        elif s[-1] in multipliers:
            value = int(s[:-1]) * multipliers[s[-1]]
        else:
            value = int(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid size: {s!r}")
    if value < 0:
        raise argparse.ArgumentTypeError(f"size must be >= 0: {s!r}")
    return value


def _parse_columns(s: str) -> int:
    value = _parse_size(s)
    if not MIN_COLUMNS <= value <= MAX_COLUMNS:
        raise argparse.ArgumentTypeError(
            f"columns must be {MIN_COLUMNS}-{MAX_COLUMNS}, got {value}")
    return value


def _terminal_width() -> int:
    """Width of the terminal on stdout, or 0 if stdout is not a terminal."""
    try:
        return os.get_terminal_size(sys.stdout.fileno()).columns
    except (OSError, ValueError):
        return 0


def _silence_stdout() -> None:
    """Point stdout at the null device once the reader has gone away.

    The interpreter flushes stdout again at exit; without this that flush
    raises BrokenPipeError a second time.
    """
    devnull = os.open(os.devnull, os.O_WRONLY)
    os.dup2(devnull, sys.stdout.fileno())


def resolve_columns(columns: Optional[int], width: Optional[int], dense: bool) -> int:
    """Row width from --columns, else --width, else the terminal size."""
    if columns is not None:
        return columns
    if width is None:
        width = _terminal_width()
    return compute_row_width(width, dense)


class _HelpAction(argparse.Action):
    """Print usage to stderr and exit with failure status."""

    def __init__(self, option_strings, dest=argparse.SUPPRESS,
                 default=argparse.SUPPRESS, help=None):
        super().__init__(option_strings=option_strings, dest=dest,
                         default=default, nargs=0, help=help)

    def __call__(self, parser, namespace, values, option_string=None):
        parser.print_help(sys.stderr)
        parser.exit(1)


# ============================================================================
# CLI
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog='hexdiff', add_help=False,
        description='Side-by-side colored hex dump of two binary files')
    ap.add_argument('-h', '--help', action=_HelpAction,
                    help='Show this help and exit')
    runs = ap.add_mutually_exclusive_group()
    runs.add_argument('-a', '--show-all', action='store_true',
                      help='Print every matching row instead of collapsing runs')
    runs.add_argument('-s', '--skip-same', action='store_true',
                      help='Never print matching rows, only the "..." marker')
    ap.add_argument('-d', '--dense', action='store_true',
                    help='No spaces between hex bytes')
    ap.add_argument('-n', '--max-bytes', type=_parse_size, default=0, metavar='N',
                    help='Stop after N bytes (0x hex, k/M/G suffix; 0 = no limit)')
    ap.add_argument('-c', '--columns', type=_parse_columns, metavar='N',
                    help=f'Bytes per row, {MIN_COLUMNS}-{MAX_COLUMNS} (overrides --width)')
    ap.add_argument('-w', '--width', type=_parse_size, metavar='N',
                    help='Fit rows to an N-character display (default: terminal width)')
    ap.add_argument('--no-header', dest='header', action='store_false',
                    help='Do not print the column header line')
    ap.add_argument('-v', '--verbose', action='store_true',
                    help='Print diagnostic messages to stderr')
    ap.add_argument('file1', help='First file')
    ap.add_argument('file2', help='Second file')
    ap.add_argument('skip1', nargs='?', type=_parse_size, default=0,
                    help='Start offset in file1 (default: 0)')
    ap.add_argument('skip2', nargs='?', type=_parse_size, default=0,
                    help='Start offset in file2 (default: 0)')
    return ap


def main(argv=None):
    args = build_parser().parse_args(argv)
    opts = HexDiffOptions(
        columns=resolve_columns(args.columns, args.width, args.dense),
        dense=args.dense,
        show_all=args.show_all,
        skip_same=args.skip_same,
        max_bytes=args.max_bytes,
        header=args.header,
        verbose=args.verbose,
    )

    cancel = CancelToken()
    with open_at(args.file1, args.skip1) as fp1, open_at(args.file2, args.skip2) as fp2:
        previous = signal.signal(signal.SIGINT, cancel.cancel)
        try:
            hexdiff(fp1, fp2, sys.stdout.write, opts, args.skip1, args.skip2, cancel)
            sys.stdout.flush()
        except BrokenPipeError:
            _silence_stdout()
        finally:
            signal.signal(signal.SIGINT, previous)


# ============================================================================

if __name__ == '__main__':
    main()
