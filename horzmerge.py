#!/usr/bin/env python3
"""horzmerge.py

Merge columns from one or more fixed-width text tables into a single table.

Every source holds exactly two lines: a header line and a value line. Fields are
right-justified and separated only by their padding, e.g.

    "  name gender age f1 f2 f3"
    " andre      m  45  a  b  c"

Columns are joined by header text (padding included). The first source that
introduces a header fixes its position in the output. A later source can only
replace a value whose trimmed text equals the "empty" sentinel (-e).

Examples:
  python horzmerge.py andre.txt tati.txt
  python horzmerge.py -e a -out merged.txt andre.txt tati.txt
  python horzmerge.py --config horzmerge.json --strict-headers a.txt b.txt

Options file (optional, JSON; CLI flags win):
  {"empty": "-", "strict_headers": false}
"""

from __future__ import annotations

import argparse
import contextlib
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, TextIO, Tuple

__version__ = "0.1.0"


# -----------------------------
# Core domain model
# -----------------------------

@dataclass(frozen=True)
class FieldToken:
    """One cell of a fixed-width line.

    ``width`` counts the leading padding, so ``render()`` gives back the cell
    exactly as it was laid out in the source.
    """

    text: str
    width: int

    def render(self) -> str:
        return self.text.rjust(self.width)

    def is_empty(self, sentinel: str) -> bool:
        return self.text.strip() == sentinel


Record = Tuple[FieldToken, ...]


@dataclass(frozen=True)
class SourceRecords:
    """Header and value records read from the source at ``index``."""

    index: int
    headers: Record
    values: Record


@dataclass(frozen=True)
class MergeOptions:
    empty: str = ""
    target: Optional[TextIO] = None  # None -> sys.stdout at merge time
    strict_headers: bool = False


# -----------------------------
# Errors
# -----------------------------

class MergeError(Exception):
    """Base class for failures raised while merging."""


class ConfigurationError(MergeError, ValueError):
    """Bad call or bad options; raised before any output is written."""


class InputError(MergeError):
    """A source could not be read. ``index`` is its position in the source list."""

    def __init__(self, index: int, message: str) -> None:
        super().__init__(message)
        self.index = index

    def convert(self, filenames: Sequence[str]) -> MergeError:
        """Returns an error naming the file that caused the failure."""
        err = MergeError(f"Cannot read file {filenames[self.index]}: {self}")
        err.__cause__ = self
        return err


class HeaderMismatchError(InputError):
    pass


class OutputError(MergeError):
    pass


# -----------------------------
# Notifier / output sinks
# -----------------------------

class LogLevel:
    DEBUG = 10
    INFO = 20
    WARNING = 30
    CRITICAL = 50


@dataclass(frozen=True)
class LogEvent:
    level: int
    message: str
    data: Optional[Dict[str, Any]] = None

    def format(self) -> str:
        if not self.data:
            return self.message
        return self.message + " (" + ", ".join(f"{k}={v}" for k, v in self.data.items()) + ")"


class IMessageSink(Protocol):
    def emit(self, event: LogEvent) -> None: ...


class BufferedSink(IMessageSink):
    """Keeps every event in memory, in emission order."""

    def __init__(self) -> None:
        self._events: List[LogEvent] = []

    def emit(self, event: LogEvent) -> None:
        self._events.append(event)

    def events(self, min_level: int = LogLevel.DEBUG) -> List[LogEvent]:
        return [e for e in self._events if e.level >= min_level]

    def messages(self, min_level: int = LogLevel.DEBUG) -> List[str]:
        return [e.message for e in self.events(min_level)]


class ConsoleSink(IMessageSink):
    """Prints events as ``[LEVEL] message (k=v, ...)``.

    The merged table owns stdout, so events go to stderr unless another
    stream is given.
    """

    _COLOR_RESET = "\x1b[0m"
    _LABELS = {
        LogLevel.DEBUG: ("[DEBUG] ", "\x1b[90m"),
        LogLevel.INFO: ("[INFO] ", ""),
        LogLevel.WARNING: ("[WARN] ", "\x1b[33m"),
        LogLevel.CRITICAL: ("[CRIT] ", "\x1b[35m"),
    }

    def __init__(
        self,
        min_level: int = LogLevel.WARNING,
        enable_color: bool = True,
        stream: Optional[TextIO] = None,
    ) -> None:
        self._min_level = min_level
        self._enable_color = enable_color
        self._stream = stream

    def emit(self, event: LogEvent) -> None:
        if event.level < self._min_level:
            return
        stream = self._stream or sys.stderr
        print(f"{self._prefix(event.level, stream)}{event.format()}", file=stream)

    def _prefix(self, level: int, stream: TextIO) -> str:
        label, color = self._LABELS.get(level, ("[LOG] ", ""))
        if not (self._enable_color and color and stream.isatty()):
            return label
        return color + label + self._COLOR_RESET


class Notifier:
    """Fans log events out to sinks. A notifier without sinks drops everything."""

    def __init__(self, sinks: Sequence[IMessageSink] = ()) -> None:
        self._sinks = list(sinks)

    def debug(self, message: str, **data: Any) -> None:
        self._emit(LogLevel.DEBUG, message, data)

    def info(self, message: str, **data: Any) -> None:
        self._emit(LogLevel.INFO, message, data)

    def warning(self, message: str, **data: Any) -> None:
        self._emit(LogLevel.WARNING, message, data)

    def critical(self, message: str, **data: Any) -> None:
        self._emit(LogLevel.CRITICAL, message, data)

    def _emit(self, level: int, message: str, data: Dict[str, Any]) -> None:
        if not self._sinks:
            return
        event = LogEvent(level=level, message=message, data=data or None)
        for sink in self._sinks:
            sink.emit(event)


# -----------------------------
# Options file
# -----------------------------

@dataclass(frozen=True)
class MergeConfig:
    """Defaults for the CLI, loaded from a JSON options file."""

    empty: str = ""
    strict_headers: bool = False

    KNOWN_KEYS = ("empty", "strict_headers")

    @staticmethod
    def load_from_json(path: Path, notifier: Notifier) -> "MergeConfig":
        if not path.exists():
            notifier.warning("Options file not found; using defaults", path=str(path))
            return MergeConfig()

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as ex:
            raise ConfigurationError(f"Invalid options file {path}: {ex}") from ex
        if not isinstance(data, dict):
            raise ConfigurationError(f"Invalid options file {path}: expected a JSON object")

        for key in sorted(k for k in data if k not in MergeConfig.KNOWN_KEYS):
            notifier.warning("Unknown option in options file; ignoring", path=str(path), key=key)

        empty = data.get("empty", "")
        strict_headers = data.get("strict_headers", False)
        if not isinstance(empty, str):
            raise ConfigurationError(f"Option 'empty' must be a string (file={path})")
        if not isinstance(strict_headers, bool):
            raise ConfigurationError(f"Option 'strict_headers' must be true or false (file={path})")

        notifier.info("Loaded options", path=str(path), empty=empty, strict_headers=strict_headers)
        return MergeConfig(empty=empty, strict_headers=strict_headers)


# -----------------------------
# Tokenizer / reader
# -----------------------------

def tokenize(line: str) -> List[FieldToken]:
    """Splits one fixed-width line into tokens.

    The whitespace that ends a token is counted as the first padding column of
    the next one. Scanning stops at the first newline.
    """
    tokens: List[FieldToken] = []
    width = 0
    buf: List[str] = []

    for ch in line:
        if ch == "\n":
            break
        if ch.isspace():
            if not buf:
                width += 1
                continue
            tokens.append(FieldToken(text="".join(buf), width=width))
            width = 1
            buf = []
            continue
        width += 1
        buf.append(ch)

    if buf:
        tokens.append(FieldToken(text="".join(buf), width=width))
    return tokens


def _read_record(stream: TextIO, index: int, what: str) -> Record:
    try:
        line = stream.readline()
    except (OSError, UnicodeDecodeError) as ex:
        raise InputError(index, f"error reading {what}: {ex}") from ex
    return tuple(tokenize(line))


def read_source(stream: TextIO, index: int) -> SourceRecords:
    """Reads the header line then the value line. End of stream gives empty records."""
    headers = _read_record(stream, index, "headers")
    values = _read_record(stream, index, "values")
    return SourceRecords(index=index, headers=headers, values=values)


def check_headers(expected: Sequence[FieldToken], source: SourceRecords) -> None:
    """Positional header check used by strict mode."""
    actual = source.headers
    if len(actual) != len(expected):
        raise HeaderMismatchError(
            source.index, f"headers len differs: expected {len(expected)}, got {len(actual)}"
        )
    for idx, (head, source_head) in enumerate(zip(expected, actual)):
        if head.render() != source_head.render():
            raise HeaderMismatchError(
                source.index,
                f"field header {idx} differs: expected `{head.render()}`, got `{source_head.render()}`",
            )


# -----------------------------
# Column merger
# -----------------------------

class ColumnMerger:
    """Accumulates sources into one record keyed by rendered header text.

    Dict insertion order is the first-seen column order.
    """

    def __init__(self, empty: str = "", notifier: Optional[Notifier] = None) -> None:
        self._empty = empty
        self._notifier = notifier or Notifier()
        self._headers: Dict[str, FieldToken] = {}
        self._values: Dict[str, FieldToken] = {}

    def add(self, source: SourceRecords) -> None:
        if len(source.headers) != len(source.values):
            self._notifier.debug(
                "Header and value counts differ; unpaired fields ignored",
                source=source.index,
                headers=len(source.headers),
                values=len(source.values),
            )

        # Last value wins for a header repeated within one source.
        pairs: Dict[str, Tuple[FieldToken, FieldToken]] = {}
        for header, value in zip(source.headers, source.values):
            pairs[header.render()] = (header, value)

        for key, (header, value) in pairs.items():
            current = self._values.get(key)

            if current is None:
                self._headers[key] = header
                self._values[key] = value
                self._notifier.debug("New column", source=source.index, column=key.strip(), position=len(self._headers) - 1)
            elif current.is_empty(self._empty):
                self._values[key] = value
                self._notifier.debug("Empty value replaced", source=source.index, column=key.strip(), value=value.text)

    def columns(self) -> List[str]:
        return list(self._headers)

    def result(self) -> Tuple[List[FieldToken], List[FieldToken]]:
        keys = list(self._headers)
        return [self._headers[k] for k in keys], [self._values[k] for k in keys]


# -----------------------------
# Table writer
# -----------------------------

def format_table(headers: Sequence[FieldToken], values: Sequence[FieldToken]) -> str:
    if len(headers) != len(values):
        raise ValueError(f"Header/value count mismatch: {len(headers)} headers, {len(values)} values")
    header_line = "".join(t.render() for t in headers)
    value_line = "".join(t.render() for t in values)
    return f"{header_line}\n{value_line}\n"


class TableWriter:
    def __init__(self, target: TextIO) -> None:
        self._target = target

    def write(self, headers: Sequence[FieldToken], values: Sequence[FieldToken]) -> None:
        text = format_table(headers, values)
        try:
            self._target.write(text)
        except OSError as ex:
            raise OutputError(f"error writing output: {ex}") from ex
        try:
            self._target.flush()
        except OSError as ex:
            raise OutputError(f"error flushing output: {ex}") from ex


# -----------------------------
# Orchestration
# -----------------------------

def merge(options: MergeOptions, *sources: TextIO, notifier: Optional[Notifier] = None) -> None:
    """Reads every source in order, merges their columns and writes the table.

    Raises ConfigurationError when no source is given, InputError (tagged with
    the source index) when a source cannot be read, and OutputError when the
    table cannot be written.
    """
    if not sources:
        raise ConfigurationError("no source readers provided")

    notifier = notifier or Notifier()
    target = options.target if options.target is not None else sys.stdout
    merger = ColumnMerger(empty=options.empty, notifier=notifier)

    expected_headers: Optional[Record] = None
    for index, stream in enumerate(sources):
        source = read_source(stream, index)
        notifier.debug("Read source", source=index, headers=len(source.headers), values=len(source.values))

        if options.strict_headers:
            if expected_headers is None:
                expected_headers = source.headers
            else:
                check_headers(expected_headers, source)

        merger.add(source)

    headers, values = merger.result()
    TableWriter(target).write(headers, values)
    notifier.debug("Merge complete", sources=len(sources), columns=len(headers))


# -----------------------------
# CLI
# -----------------------------

def _fatal(notifier: Notifier, err: BaseException) -> int:
    notifier.critical(f"Fatal error: {err}", error=type(err).__name__)
    return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="horzmerge", description="Merge columns from fixed-width text tables")
    ap.add_argument("-v", dest="version", action="store_true", help="print version of the command to stdout.")
    ap.add_argument("-e", dest="empty", default=None, help="value of empty cells (default: options file, else \"\").")
    ap.add_argument("-out", dest="out", default="", help="name of output file. Defaults to stdout.")
    ap.add_argument("--config", default="", help="Path to a JSON options file (optional)")
    ap.add_argument(
        "--strict-headers",
        action="store_true",
        help="Require every source to carry the first source's headers, in the same order",
    )
    ap.add_argument("--debug", action="store_true", help="Enable debug logging")
    ap.add_argument("files", nargs="*", help="Source files, in precedence order")
    args = ap.parse_args(argv)

    if args.version:
        print(__version__)
        return 0

    notifier = Notifier([ConsoleSink(min_level=LogLevel.DEBUG if args.debug else LogLevel.WARNING)])
    filenames: List[str] = list(args.files)

    try:
        config = MergeConfig()
        if args.config.strip():
            config = MergeConfig.load_from_json(Path(args.config).expanduser(), notifier)

        options = MergeOptions(
            empty=config.empty if args.empty is None else args.empty,
            strict_headers=config.strict_headers or args.strict_headers,
        )

        with contextlib.ExitStack() as stack:
            sources = [stack.enter_context(Path(name).open("r", encoding="utf-8")) for name in filenames]
            if args.out:
                out = stack.enter_context(Path(args.out).open("w", encoding="utf-8", newline=""))
                options = MergeOptions(empty=options.empty, target=out, strict_headers=options.strict_headers)
            notifier.debug("Merging", files=len(filenames), out=args.out or "<stdout>", empty=repr(options.empty))
            merge(options, *sources, notifier=notifier)
    except InputError as ex:
        return _fatal(notifier, ex.convert(filenames))
    except Exception as ex:
        return _fatal(notifier, ex)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
