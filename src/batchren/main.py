#!/usr/bin/env python3
"""
batchren - Rename a folder of files to a sequential, prefixed scheme.

Every regular file directly inside a source directory is moved (or copied)
into a destination directory as ``{prefix}_{index}{ext}``. The prefix
defaults to the name of the source directory.

Architecture:
- Directory listing, pair generation and transfer are separate steps
- Pair generation is pure; only the executor touches the filesystem
- Per-pair error isolation: one failed transfer never stops the batch
- Verbosity and logger are passed in explicitly, never read from globals
"""

import argparse
import contextlib
import hashlib
import logging
import os
import shutil
import sys
import tempfile
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import xxhash

from . import __version__

# Constants
BUFFER_SIZE = 8 * 1024 * 1024  # 8MB
HASH_ALGORITHMS = ["xxh64be", "md5", "sha1", "sha256"]
LOG_ENV_VAR = "BATCHREN_LOG"
DRY_RUN_MARKER = "[dry-run] "

logger = logging.getLogger("batchren")


# ============================================================================
# Data Models
# ============================================================================


class TransferMode(Enum):
    """
    Operation applied to every pair in a batch.

    Attributes
    ----------
    MOVE : str
        Rename the source onto the destination path
    COPY : str
        Duplicate the source content at the destination path
    SIMULATE : str
        Report what would happen without touching the filesystem
    """

    MOVE = "move"
    COPY = "copy"
    SIMULATE = "simulate"

    @classmethod
    def from_flags(cls, copy: bool, dry_run: bool) -> "TransferMode":
        """Pick the mode for a run from the CLI flags."""
        if dry_run:
            return cls.SIMULATE
        return cls.COPY if copy else cls.MOVE


class TransferState(Enum):
    """Lifecycle of a single pair inside the executor."""

    PENDING = "pending"
    ATTEMPTED = "attempted"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class TransferPair:
    """
    A source file and the path it will be transferred to.

    Attributes
    ----------
    source : Path
        Existing file inside the source directory
    destination : Path
        Computed path inside the destination directory
    """

    source: Path
    destination: Path


@dataclass
class TransferResult:
    """
    Outcome of one pair.

    Attributes
    ----------
    pair : TransferPair
        The pair that was processed
    state : TransferState, default=TransferState.PENDING
        Final state once the executor is done with the pair
    error : str | None, default=None
        Error message if the transfer failed
    """

    pair: TransferPair
    state: TransferState = TransferState.PENDING
    error: str | None = None

    @property
    def success(self) -> bool:
        """
        Check if the transfer succeeded.

        Returns
        -------
        bool
            True if the pair reached SUCCEEDED, False otherwise
        """
        return self.state == TransferState.SUCCEEDED


class VerificationError(OSError):
    """Raised when a copied file does not hash to the same value as its source."""


# ============================================================================
# Hashing
# ============================================================================


class HashCalculator:
    """
    Incremental hash calculator supporting multiple algorithms.

    Parameters
    ----------
    algorithm : str, default="xxh64be"
        Hash algorithm to use. Supported: xxh64be, md5, sha1, sha256
    """

    def __init__(self, algorithm: str = "xxh64be"):
        self.algorithm = algorithm.lower()
        if self.algorithm == "xxh64be":
            self._hasher = xxhash.xxh64()
        elif self.algorithm in ["md5", "sha1", "sha256"]:
            self._hasher = hashlib.new(self.algorithm)
        else:
            raise ValueError(f"Unsupported hash algorithm: {algorithm}")

    def update(self, data: bytes) -> None:
        """
        Update hash with new data.

        Parameters
        ----------
        data : bytes
            Data chunk to add to the hash
        """
        self._hasher.update(data)

    def hexdigest(self) -> str:
        """
        Get final hex digest.

        Returns
        -------
        str
            Hexadecimal string representation of the hash
        """
        return self._hasher.hexdigest()

    @staticmethod
    def hash_file(path: Path, algorithm: str = "xxh64be") -> str:
        """
        Hash a whole file.

        Parameters
        ----------
        path : Path
            Path to file to hash
        algorithm : str, default="xxh64be"
            Hash algorithm to use

        Returns
        -------
        str
            Final hash digest
        """
        hasher = HashCalculator(algorithm)
        with open(path, "rb") as f:
            while chunk := f.read(BUFFER_SIZE):
                hasher.update(chunk)
        return hasher.hexdigest()


# ============================================================================
# Listing and Pairing
# ============================================================================


def list_source_files(source: Path, sort: bool = False) -> list[Path]:
    """
    List the regular files directly inside a directory.

    Parameters
    ----------
    source : Path
        Directory to read
    sort : bool, default=False
        Sort by file name instead of keeping the directory read order

    Returns
    -------
    list[Path]
        Paths of the regular files found

    Raises
    ------
    OSError
        If the directory itself cannot be opened or read
    """
    files = []

    with os.scandir(source) as entries:
        while True:
            try:
                entry = next(entries)
            except StopIteration:
                break
            except OSError as e:
                logger.warning(f"Error reading source directory entry: {e}")
                continue

            try:
                is_file = entry.is_file(follow_symlinks=False)
            except OSError as e:
                logger.warning(f"Failed to get file type for entry {entry.path}: {e}")
                continue

            if is_file:
                files.append(Path(entry.path))
            else:
                logger.debug(f"Ignoring non-file entry: {entry.path}")

    if sort:
        files.sort(key=lambda p: p.name)

    return files


def generate_pairs(
    source_files: Iterable[Path], destination: Path, prefix: str
) -> list[TransferPair]:
    """
    Compute the destination of every source file.

    The i-th file becomes ``{prefix}_{i}{ext}`` inside ``destination``. The
    extension is kept exactly as it appears on the source file and left out
    when there is none. Existing files at the computed paths are not
    checked for.

    Parameters
    ----------
    source_files : Iterable[Path]
        Source files in listing order
    destination : Path
        Destination directory
    prefix : str
        Prefix shared by every new name

    Returns
    -------
    list[TransferPair]
        One pair per source file, in the same order
    """
    return [
        TransferPair(
            source=source_file,
            destination=destination / f"{prefix}_{index}{file_extension(source_file)}",
        )
        for index, source_file in enumerate(source_files)
    ]


def file_extension(path: Path) -> str:
    """
    Return the extension of a file name, dot included.

    Everything after the last dot counts, so ``foo.`` gives ``"."``. A name
    whose only dot is the leading one (``.bashrc``) has no extension.

    Parameters
    ----------
    path : Path
        File whose name is inspected

    Returns
    -------
    str
        Extension with its dot, or an empty string
    """
    stem, dot, ext = path.name.rpartition(".")
    if not dot or not stem:
        return ""
    return dot + ext


# ============================================================================
# Transfer Executor
# ============================================================================


class TransferExecutor:
    """
    Apply one transfer mode to a sequence of pairs.

    Each pair is handled on its own: a failure is logged and recorded, and
    the executor moves on to the next pair. Nothing is retried.

    Parameters
    ----------
    mode : TransferMode
        Operation applied to every pair
    verbose : bool, default=False
        Report successful transfers at INFO instead of DEBUG
    simulated : TransferMode, default=TransferMode.MOVE
        Action named in report lines when ``mode`` is SIMULATE
    verify : bool, default=False
        Hash-check copies against their source (COPY mode only)
    hash_algorithm : str, default="xxh64be"
        Hash algorithm used by ``verify``
    log : logging.Logger | None, default=None
        Logger to report to (module logger if None)
    """

    def __init__(
        self,
        mode: TransferMode,
        verbose: bool = False,
        simulated: TransferMode = TransferMode.MOVE,
        verify: bool = False,
        hash_algorithm: str = "xxh64be",
        log: logging.Logger | None = None,
    ):
        if simulated == TransferMode.SIMULATE:
            raise ValueError("Simulated action must be move or copy")

        self.mode = mode
        self.verbose = verbose
        self.simulated = simulated
        self.verify = verify
        self.hash_algorithm = hash_algorithm
        self.log = log if log else logger

    @property
    def action(self) -> str:
        """Verb used in report lines."""
        if self.mode == TransferMode.SIMULATE:
            return self.simulated.value
        return self.mode.value

    def run(self, pairs: Iterable[TransferPair]) -> list[TransferResult]:
        """
        Transfer every pair and log a summary.

        Parameters
        ----------
        pairs : Iterable[TransferPair]
            Pairs in the order they should be processed

        Returns
        -------
        list[TransferResult]
            One result per pair
        """
        results = list(self.iter_results(pairs))

        failed = sum(1 for r in results if not r.success)
        self._report(f"{len(results)} file(s) processed, {failed} failed")

        return results

    def iter_results(self, pairs: Iterable[TransferPair]) -> Iterator[TransferResult]:
        """
        Transfer pairs one by one.

        Yields
        ------
        TransferResult
            Result of each pair as soon as it is done
        """
        for pair in pairs:
            yield self.execute(pair)

    def execute(self, pair: TransferPair) -> TransferResult:
        """
        Transfer a single pair.

        Parameters
        ----------
        pair : TransferPair
            Pair to process

        Returns
        -------
        TransferResult
            SUCCEEDED, or FAILED with the error message
        """
        result = TransferResult(pair=pair)
        result.state = TransferState.ATTEMPTED

        try:
            self._apply(pair)
        except OSError as e:
            result.state = TransferState.FAILED
            result.error = str(e)
            self.log.error(
                f"Failed to {self.action} {pair.source} -> {pair.destination}: {e}"
            )
            return result

        result.state = TransferState.SUCCEEDED
        self._report(self._describe(pair))
        return result

    # ------------------------------------------------------------------------
    # Internal methods
    # ------------------------------------------------------------------------

    def _apply(self, pair: TransferPair) -> None:
        """
        Dispatch on the transfer mode.

        Raises
        ------
        OSError
            If the filesystem operation fails
        """
        if self.mode == TransferMode.MOVE:
            pair.source.replace(pair.destination)
        elif self.mode == TransferMode.COPY:
            self._copy(pair)
        elif self.mode == TransferMode.SIMULATE:
            pass
        else:
            raise ValueError(f"Unknown transfer mode: {self.mode}")

    def _copy(self, pair: TransferPair) -> None:
        """
        Copy through a temporary sibling file, then replace the destination.

        Raises
        ------
        OSError
            If reading, writing or the final rename fails
        VerificationError
            If ``verify`` is set and the destination hash differs
        """
        hasher = HashCalculator(self.hash_algorithm) if self.verify else None

        with open(pair.source, "rb") as f_source:
            # Unique name, so no existing file in the destination is touched
            fd, temp_name = tempfile.mkstemp(
                dir=pair.destination.parent,
                prefix=f".{pair.destination.name}.",
                suffix=".tmp",
            )
            temp_path = Path(temp_name)

            try:
                with os.fdopen(fd, "wb") as f_dest:
                    while chunk := f_source.read(BUFFER_SIZE):
                        if hasher:
                            hasher.update(chunk)
                        f_dest.write(chunk)
                shutil.copymode(pair.source, temp_path)
                temp_path.replace(pair.destination)
            except OSError:
                with contextlib.suppress(OSError):
                    temp_path.unlink()
                raise

        if hasher:
            source_hash = hasher.hexdigest()
            dest_hash = HashCalculator.hash_file(pair.destination, self.hash_algorithm)
            if dest_hash != source_hash:
                raise VerificationError(
                    f"Hash mismatch: {dest_hash} != {source_hash}"
                )
            self.log.debug(f"hash {self.hash_algorithm.upper()}:{source_hash}")

    def _describe(self, pair: TransferPair) -> str:
        marker = DRY_RUN_MARKER if self.mode == TransferMode.SIMULATE else ""
        return f"{marker}{self.action} {pair.source} -> {pair.destination}"

    def _report(self, message: str) -> None:
        if self.verbose:
            self.log.info(message)
        else:
            self.log.debug(message)


# ============================================================================
# Configuration
# ============================================================================


def resolve_directory(path: Path, role: str) -> Path:
    """
    Resolve a path to its absolute, symlink-free form.

    Parameters
    ----------
    path : Path
        Path as given on the command line
    role : str
        "source" or "destination", used in the error message

    Returns
    -------
    Path
        Resolved path

    Raises
    ------
    FileNotFoundError
        If the path does not exist or cannot be accessed
    """
    try:
        return Path(path).resolve(strict=True)
    # Symlink loops raise RuntimeError before Python 3.13
    except (OSError, RuntimeError) as e:
        raise FileNotFoundError(f"Failed to canonicalize {role} path: {e}") from e


def resolve_prefix(source: Path, prefix: str | None = None) -> str:
    """
    Return the explicit prefix, or the base name of the source directory.

    Parameters
    ----------
    source : Path
        Source directory as given on the command line
    prefix : str | None, default=None
        Explicit prefix, used as-is when given

    Returns
    -------
    str
        Prefix for the run

    Raises
    ------
    ValueError
        If no prefix is given and the source path has no base name
    """
    if prefix is not None:
        return prefix

    name = Path(source).name
    if name in ("", ".", ".."):
        raise ValueError(
            "Cannot determine prefix from source path. "
            "Supply a prefix using the --prefix option."
        )
    return name


@dataclass(frozen=True)
class RenameConfig:
    """Configuration for one batch run."""

    source: Path
    destination: Path
    prefix: str
    mode: TransferMode = TransferMode.MOVE
    simulated: TransferMode = TransferMode.MOVE
    verbose: bool = False
    sort: bool = False
    verify: bool = False
    hash_algorithm: str = "xxh64be"

    def __post_init__(self):
        """Validate configuration."""
        if self.hash_algorithm.lower() not in HASH_ALGORITHMS:
            raise ValueError(f"Invalid hash algorithm: {self.hash_algorithm}")
        if self.simulated == TransferMode.SIMULATE:
            raise ValueError("Simulated action must be move or copy")
        if self.verify and self.mode != TransferMode.COPY:
            logger.warning(
                f"--verify only applies to copies, ignored in {self.mode.value} mode"
            )

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "RenameConfig":
        """
        Create config from command-line arguments.

        Paths are resolved before the prefix is derived, so a missing source
        fails before anything else is looked at.

        Raises
        ------
        FileNotFoundError
            If the source or destination cannot be resolved
        ValueError
            If the prefix cannot be determined
        """
        source = resolve_directory(args.source, "source")
        destination = resolve_directory(args.destination, "destination")
        prefix = resolve_prefix(args.source, args.prefix)

        return cls(
            source=source,
            destination=destination,
            prefix=prefix,
            mode=TransferMode.from_flags(args.copy, args.dry_run),
            simulated=TransferMode.COPY if args.copy else TransferMode.MOVE,
            verbose=args.verbose,
            sort=args.sort,
            verify=args.verify,
            hash_algorithm=args.hash_algorithm,
        )


# ============================================================================
# Batch Orchestration
# ============================================================================


class BatchRenamer:
    """
    Run listing, pairing and transfer for one configuration.

    Parameters
    ----------
    config : RenameConfig
        Run configuration
    """

    def __init__(self, config: RenameConfig):
        self.config = config

    def run(self) -> list[TransferResult]:
        """
        Execute the batch.

        Returns
        -------
        list[TransferResult]
            One result per source file

        Raises
        ------
        OSError
            If the source directory cannot be listed
        """
        config = self.config

        logger.debug(f"Source path: {config.source}")
        logger.debug(f"Destination path: {config.destination}")
        logger.debug(f"Mode: {config.mode.value}")
        logger.debug(f"Prefix: {config.prefix}")
        logger.debug(f"Verbose: {config.verbose}")

        source_files = list_source_files(config.source, sort=config.sort)
        pairs = generate_pairs(source_files, config.destination, config.prefix)

        executor = TransferExecutor(
            mode=config.mode,
            verbose=config.verbose,
            simulated=config.simulated,
            verify=config.verify,
            hash_algorithm=config.hash_algorithm,
        )
        return executor.run(pairs)


# ============================================================================
# Main Entry Point
# ============================================================================


def setup_logging(level: int | str = logging.INFO) -> None:
    """
    Configure logging for the application.

    The ``BATCHREN_LOG`` environment variable, when set to a level name,
    takes precedence over ``level``.

    Parameters
    ----------
    level : int | str, default=logging.INFO
        Root log level
    """
    env_level = os.environ.get(LOG_ENV_VAR, "").upper()
    # getLevelName maps unknown names to a "Level x" string
    if isinstance(logging.getLevelName(env_level), int):
        level = env_level

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Parameters
    ----------
    argv : list[str] | None, default=None
        Arguments to parse (``sys.argv[1:]`` if None)

    Returns
    -------
    argparse.Namespace
        Parsed command line arguments
    """
    parser = argparse.ArgumentParser(
        prog="batchren",
        description="Rename files based on their folder.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  batchren ~/photos/trip                     # Move into . as trip_0.jpg, trip_1.png, ...
  batchren -c -p holiday ~/photos/trip out   # Copy into out/ as holiday_0.jpg, ...
  batchren -d -v ~/photos/trip out           # Show what would happen
        """,
    )

    parser.add_argument(
        "source",
        type=Path,
        help="The source folder containing the files",
    )

    parser.add_argument(
        "destination",
        type=Path,
        nargs="?",
        default=Path("."),
        help="The target folder to put the renamed files (default: .)",
    )

    parser.add_argument(
        "-c", "--copy", action="store_true", help="Copy instead of moving"
    )

    parser.add_argument(
        "-p",
        "--prefix",
        type=str,
        default=None,
        help="The file prefix to use (default: the source folder name)",
    )

    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log file actions"
    )

    parser.add_argument(
        "-d", "--dry-run", action="store_true", help="Do nothing, only report"
    )

    parser.add_argument(
        "-s",
        "--sort",
        action="store_true",
        help="Number files in name order instead of directory order",
    )

    parser.add_argument(
        "--verify",
        action="store_true",
        help="Hash-check every copied file against its source (copy mode only)",
    )

    parser.add_argument(
        "--hash-algorithm",
        type=str,
        default="xxh64be",
        choices=HASH_ALGORITHMS,
        help="Hash algorithm for --verify (default: xxh64be)",
    )

    parser.add_argument(
        "-V", "--version", action="version", version=f"%(prog)s {__version__}"
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """
    CLI entry point.

    Returns
    -------
    int
        Exit code: 0 once the batch ran, 1 for a fatal error, 130 for keyboard interrupt
    """
    args = parse_arguments(argv)
    setup_logging()

    try:
        config = RenameConfig.from_args(args)
        BatchRenamer(config).run()
        return 0

    except KeyboardInterrupt:
        logger.error("Operation interrupted by user")
        return 130
    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Invalid parameter: {e}")
        return 1
    except OSError as e:
        logger.error(f"Error renaming files: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
