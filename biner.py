#!/usr/bin/env python3
"""
Biner - combine and separate text files

Concatenates text files into a single marker-delimited blob and recovers
them again. Each file is framed as::

    --!- BINER FILE BEGIN -!-- name.txt
    <file content>--!- BINER FILE END -!-- name.txt

Separation writes every section back into a target directory under the
final component of its recorded name, appending ``_1``, ``_2``, ... when a
file of that name already exists.
"""

import argparse
import logging
import os
import sys
import traceback
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Set, Union

from rich.console import Console
from rich.markup import escape


__version__ = "1.0.0"
__author__ = "Biner Project"
__license__ = "GPL-3.0"

DEFAULT_BEGIN_MARKER = "--!- BINER FILE BEGIN -!--"
DEFAULT_END_MARKER = "--!- BINER FILE END -!--"
MAX_DUPLICATES = 100000

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "biner" / "config"


class BinerError(Exception):
    """Base exception for biner errors"""

    pass


class MissingInputError(BinerError, FileNotFoundError):
    """A file named for combining does not exist"""

    pass


class OpenFailureError(BinerError, OSError):
    """A file exists but cannot be opened for reading"""

    pass


class MalformedArchiveError(BinerError):
    """Archive text lacks the begin or end marker entirely"""

    pass


class DuplicateExhaustionError(BinerError):
    """Every collision suffix for an output name is already taken"""

    pass


class DirectoryCreationError(BinerError):
    """A required directory could not be created"""

    pass


class UsageError(BinerError):
    """Invalid or missing arguments"""

    pass


class UnsafeNameError(BinerError):
    """Recorded filename cannot be written inside the target directory"""

    pass


@dataclass(frozen=True)
class Settings:
    """Immutable configuration shared by combine and separate"""

    begin_marker: str = DEFAULT_BEGIN_MARKER
    end_marker: str = DEFAULT_END_MARKER
    directory: Path = field(default_factory=lambda: Path("./"))
    verbose: bool = False
    encoding: str = "utf-8"
    dry_run: bool = False
    max_duplicates: int = MAX_DUPLICATES

    def __post_init__(self):
        if not self.begin_marker or not self.end_marker:
            raise UsageError("Begin and end markers must not be empty")
        if self.begin_marker == self.end_marker:
            raise UsageError("Begin and end markers must differ")
        if self.begin_marker in self.end_marker or self.end_marker in self.begin_marker:
            raise UsageError("One marker must not contain the other")
        if self.max_duplicates < 1:
            raise UsageError(
                f"max_duplicates must be positive, got {self.max_duplicates}"
            )
        # frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "directory", Path(self.directory))

    @classmethod
    def from_dict(cls, config: Dict) -> "Settings":
        """Build settings from a plain config dict, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        return cls(
            **{k: v for k, v in config.items() if k in known and v is not None}
        )


@dataclass(frozen=True)
class FileInput:
    """Either a filesystem path or literal archive text"""

    value: str
    is_path: bool

    @classmethod
    def path(cls, value: Union[str, os.PathLike]) -> "FileInput":
        return cls(os.fspath(value), True)

    @classmethod
    def literal(cls, text: str) -> "FileInput":
        return cls(text, False)

    @classmethod
    def from_argument(cls, item: Union[str, os.PathLike, "FileInput"]) -> "FileInput":
        """Classify a caller-supplied item once.

        Paths and strings are paths only when they name an existing
        filesystem entry; anything else is literal text.
        """
        if isinstance(item, FileInput):
            return item
        if isinstance(item, os.PathLike):
            item = os.fspath(item)
        # os.path.exists swallows ENAMETOOLONG and embedded NULs
        if os.path.exists(item):
            return cls.path(item)
        return cls.literal(item)


@dataclass
class Section:
    """One marker-delimited region of an archive"""

    recorded_name: str
    payload: str


FileArgument = Union[str, os.PathLike, FileInput]


class Biner:
    """Combines files into marker-framed text and separates them again"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or Settings()
        self.console = Console()
        self.logger = self._setup_logging()
        self.stats = self._fresh_stats()

    def _setup_logging(self) -> logging.Logger:
        """Setup structured logging"""
        logger = logging.getLogger("biner")

        # Shared logger: verbosity is decided per instance in _progress
        if logger.level == logging.NOTSET:
            logger.setLevel(logging.INFO)

        # Avoid duplicate handlers
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                "%(asctime)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)

        return logger

    def _progress(self, message: str) -> None:
        if self.settings.verbose:
            self.logger.info(message)

    @staticmethod
    def _fresh_stats() -> Dict[str, int]:
        return {
            "files_processed": 0,
            "bytes_processed": 0,
            "sections_skipped": 0,
        }

    def _format_size(self, size: int) -> str:
        """Format size in human-readable format"""
        if size < 0:
            return "0B"

        for unit in ["B", "KB", "MB", "GB", "TB"]:
            if size < 1024.0:
                return f"{size:.1f}{unit}"
            size /= 1024.0
        return f"{size:.1f}PB"

    def _read_text(self, path: str) -> str:
        """Read a whole file without newline translation"""
        try:
            with open(
                path, "r", encoding=self.settings.encoding,
                errors="surrogateescape", newline="",
            ) as f:
                return f.read()
        except FileNotFoundError:
            raise MissingInputError(f"File does not exist: {path}")
        except OSError as e:
            raise OpenFailureError(f"Failed to open {path}: {e}")

    # Combine

    def combine_files(self, files: Sequence[Union[str, os.PathLike]]) -> str:
        """Wrap every file between begin and end markers, in input order.

        All paths are checked for existence before any content is read, so a
        missing file aborts the whole operation without partial output.
        """
        self.stats = self._fresh_stats()
        names = [os.fspath(item) for item in files]

        for name in names:
            if not os.path.exists(name):
                raise MissingInputError(f"File does not exist: {name}")

        begin = self.settings.begin_marker
        end = self.settings.end_marker
        parts: List[str] = []

        for name in names:
            self._progress(f"Adding {name}")
            content = self._read_text(name)

            parts.append(f"{begin} {name}\n")
            parts.append(content)
            parts.append(f"{end} {name}\n")

            self.stats["files_processed"] += 1
            self.stats["bytes_processed"] += len(content)
            self._progress(f"Added {name} ({self._format_size(len(content))})")

        self._progress(
            f"Combined {self.stats['files_processed']} files "
            f"({self._format_size(self.stats['bytes_processed'])})"
        )
        return "".join(parts)

    def write_combined(self, text: str, output_path: Union[str, Path]) -> Path:
        """Write combined text, creating the parent directory when needed"""
        output_path = Path(output_path)
        self._ensure_directory(output_path.parent)

        try:
            with open(
                output_path, "w", encoding=self.settings.encoding,
                errors="surrogateescape", newline="",
            ) as f:
                f.write(text)
        except OSError as e:
            raise BinerError(f"Cannot write to {output_path}: {e}")

        self.logger.info(f"Output: {output_path}")
        return output_path

    def _ensure_directory(self, directory: Path) -> None:
        if directory.is_dir():
            return
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DirectoryCreationError(f"Failed to create directory {directory}: {e}")

    # Separate

    def iter_sections(self, text: str) -> Iterator[Section]:
        """Yield sections left to right.

        The search for the next begin marker resumes right after the
        consumed end marker and its delimiter. A trailing begin marker with
        no end marker after it is left unconsumed.
        """
        begin = self.settings.begin_marker
        end = self.settings.end_marker

        begin_pos = text.find(begin)
        while begin_pos != -1:
            end_pos = text.find(end, begin_pos)
            if end_pos == -1:
                self.stats["sections_skipped"] += 1
                self._progress(
                    f"Ignoring unterminated section at offset {begin_pos}"
                )
                break

            name_start = begin_pos + len(begin) + 1
            name_end = text.find("\n", name_start)

            if name_end == -1 or name_end > end_pos:
                # header line runs into the end marker: no payload
                self.logger.warning(
                    f"Section at offset {begin_pos} has no header newline before its end marker"
                )
                recorded_name = text[name_start:end_pos]
                payload = ""
            else:
                recorded_name = text[name_start:name_end]
                payload = text[name_end + 1:end_pos]

            yield Section(recorded_name, payload)

            begin_pos = text.find(begin, end_pos + len(end) + 1)

    def _safe_leaf(self, recorded_name: str) -> str:
        """Final path component of a recorded name"""
        if "\x00" in recorded_name:
            raise UnsafeNameError(
                f"Recorded name contains null bytes: {recorded_name!r}"
            )

        leaf = os.path.basename(recorded_name)
        if leaf in ("", ".", ".."):
            raise UnsafeNameError(
                f"Recorded name has no usable file name: {recorded_name!r}"
            )
        return leaf

    def resolve_output_name(
        self, recorded_name: str, planned: Optional[Set[str]] = None
    ) -> str:
        """Pick an unused name in the target directory.

        ``planned`` holds names claimed earlier in a dry run, which never
        reach the filesystem.
        """
        planned = planned if planned is not None else set()
        directory = self.settings.directory
        leaf = self._safe_leaf(recorded_name)

        def taken(name: str) -> bool:
            return name in planned or (directory / name).exists()

        if not taken(leaf):
            return leaf

        for i in range(1, self.settings.max_duplicates + 1):
            candidate = f"{leaf}_{i}"
            if not taken(candidate):
                return candidate

        raise DuplicateExhaustionError(
            f"Too many duplicates of {leaf}: {self.settings.max_duplicates} "
            f"suffixes already taken in {directory}"
        )

    def _write_section(self, name: str, payload: str) -> Path:
        target = self.settings.directory / name
        try:
            with open(
                target, "w", encoding=self.settings.encoding,
                errors="surrogateescape", newline="",
            ) as f:
                f.write(payload)
        except OSError as e:
            raise BinerError(f"Cannot write {target}: {e}")
        return target

    def _working_text(self, item: FileInput) -> str:
        if item.is_path:
            return self._read_text(item.value)
        return item.value

    def _describe(self, item: FileInput) -> str:
        return item.value if item.is_path else "<literal text>"

    def separate_files(self, files: Sequence[FileArgument]) -> int:
        """Recover every section of every input into the target directory.

        Returns the number of files written (or planned, in a dry run).
        Raises MalformedArchiveError as soon as an input lacks either marker;
        files written for earlier inputs are kept.
        """
        self.stats = self._fresh_stats()
        settings = self.settings
        inputs = [FileInput.from_argument(item) for item in files]
        planned: Set[str] = set()

        if not settings.dry_run:
            self._ensure_directory(settings.directory)

        for item in inputs:
            source = self._describe(item)
            text = self._working_text(item)

            if settings.begin_marker not in text or settings.end_marker not in text:
                raise MalformedArchiveError(
                    f"No begin or end marker found in {source}"
                )

            self._progress(f"Separating {source}")

            for section in self.iter_sections(text):
                name = self.resolve_output_name(section.recorded_name, planned)

                if settings.dry_run:
                    planned.add(name)
                    self.console.print(
                        f"  [green]✓[/green] {escape(section.recorded_name)} -> "
                        f"{escape(name)} ([blue]{self._format_size(len(section.payload))}[/blue])"
                    )
                else:
                    target = self._write_section(name, section.payload)
                    self._progress(f"Wrote {section.recorded_name} -> {target}")

                self.stats["files_processed"] += 1
                self.stats["bytes_processed"] += len(section.payload)

        if settings.dry_run:
            self.console.print(
                f"\n[bold]Summary:[/bold] would write [green]{self.stats['files_processed']}[/green] "
                f"files to {escape(str(settings.directory))}"
            )
        else:
            self._progress(
                f"Separated {self.stats['files_processed']} files "
                f"({self._format_size(self.stats['bytes_processed'])}) into {settings.directory}"
            )

        return self.stats["files_processed"]


def encode(settings: Settings, files: Sequence[Union[str, os.PathLike]]) -> str:
    """Combine ``files`` into one marker-framed text"""
    return Biner(settings).combine_files(files)


def decode(settings: Settings, files: Sequence[FileArgument]) -> int:
    """Separate archive paths or literal archive text into files"""
    return Biner(settings).separate_files(files)


def create_config_file(config_path: Path) -> bool:
    """Create a default configuration file"""
    default_config = f"""# Biner Configuration
# Uncomment and modify values as needed

# Marker written before each file's content
# begin_marker = "{DEFAULT_BEGIN_MARKER}"

# Marker written after each file's content
# end_marker = "{DEFAULT_END_MARKER}"

# Directory separated files are written to
# directory = "./"

# Text encoding used to read and write files
# encoding = "utf-8"

# Feature flags
# verbose = false
# dry_run = false
"""

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            f.write(default_config)
        return True
    except OSError as e:
        print(f"Error creating config file: {e}", file=sys.stderr)
        return False


def load_config_file(config_path: Path) -> Dict:
    """Load configuration from file with error handling"""
    if not config_path.exists():
        return {}

    config = {}
    line_num = 0
    try:
        with open(config_path, "r") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue

                if "=" in line:
                    key, value = line.split("=", 1)
                    key = key.strip()
                    value = value.strip().strip("\"'")

                    if value.lower() in ("true", "false"):
                        config[key] = value.lower() == "true"
                    elif value.isdigit():
                        config[key] = int(value)
                    else:
                        config[key] = value

    except (OSError, UnicodeDecodeError) as e:
        print(
            f"Warning: Error loading config file on line {line_num}: {e}",
            file=sys.stderr,
        )

    return config


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="biner",
        description="Combine and separate text files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Combine files to standard output or a file
  %(prog)s -c a.txt b.txt > combined.txt
  %(prog)s -c a.txt b.txt -o out/combined.txt

  # Separate into the current directory or another one
  %(prog)s -s combined.txt
  %(prog)s -s combined.txt -d ./restored

  # File lists can be piped in, one path per line
  find . -name '*.md' | %(prog)s -c -o docs.txt

  # Separate archive text piped on standard input
  cat combined.txt | %(prog)s -s -

  # Custom markers
  %(prog)s -c -bm '<<<' -em '>>>' a.txt b.txt
        """,
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-c", "--combine", dest="mode", action="store_const", const="combine",
        help="Combine files into one archive text",
    )
    mode.add_argument(
        "-s", "--separate", dest="mode", action="store_const", const="separate",
        help="Separate archive text back into files",
    )

    parser.add_argument("files", nargs="*", help="Files to combine or separate")
    parser.add_argument("-bm", "--begin-marker", help="Begin marker text")
    parser.add_argument("-em", "--end-marker", help="End marker text")
    parser.add_argument(
        "-o", "--output", help="Combined output file (default: standard output)"
    )
    parser.add_argument(
        "-d", "--directory", help="Directory separated files are written to"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument(
        "-n", "--dry-run", action="store_true", help="Show what would be written"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Configuration file path",
    )
    parser.add_argument(
        "--create-config", action="store_true", help="Create default config"
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    return parser


def _collect_inputs(args: argparse.Namespace, stdin) -> List[FileArgument]:
    """Resolve positional arguments and piped input into the file list"""
    files: List[FileArgument] = []
    read_stdin_archive = False

    for arg in args.files:
        if arg == "-" and args.mode == "separate":
            read_stdin_archive = True
        elif os.path.exists(arg):
            files.append(arg)
        else:
            print(
                f"File '{arg}' does not exist, or is an invalid parameter.",
                file=sys.stderr,
            )

    if read_stdin_archive:
        files.append(FileInput.literal(stdin.read()))
    elif stdin is not None and not stdin.isatty():
        for line in stdin:
            line = line.rstrip("\r\n")
            if line:
                files.append(line)

    if args.mode is None:
        raise UsageError("You must specify a mode (--combine or --separate).")

    if not files:
        if args.mode == "combine":
            raise UsageError("You must specify at least one file to combine.")
        raise UsageError("You must specify at least one file to separate.")

    return files


def main(argv: Optional[Sequence[str]] = None, stdin=None) -> int:
    """Main entry point with comprehensive error handling"""
    parser = _build_parser()
    args = parser.parse_args(argv)
    stdin = stdin if stdin is not None else sys.stdin

    try:
        if args.create_config:
            if create_config_file(args.config):
                print(f"Created default configuration file: {args.config}")
                return 0
            return 1

        config = load_config_file(args.config)

        # Command line overrides the config file
        config.update(
            {
                "begin_marker": args.begin_marker,
                "end_marker": args.end_marker,
                "directory": args.directory,
            }
        )
        if args.verbose:
            config["verbose"] = True
        if args.dry_run:
            config["dry_run"] = True

        settings = Settings.from_dict(config)
        files = _collect_inputs(args, stdin)
        biner = Biner(settings)

        if args.mode == "combine":
            combined = biner.combine_files(files)
            if args.output:
                biner.write_combined(combined, args.output)
            else:
                sys.stdout.write(combined)
                sys.stdout.flush()
        else:
            biner.separate_files(files)

        return 0

    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        return 130
    except BinerError as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            traceback.print_exc()
        return 1
    except (OSError, ValueError, TypeError) as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        if args.verbose:
            traceback.print_exc()
        return 1


def cli_main():
    """Synchronous entry point for console scripts"""
    return main()


if __name__ == "__main__":
    sys.exit(cli_main())
