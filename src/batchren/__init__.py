"""
batchren: Rename a folder of files to a sequential, prefixed scheme.

This package lists the files of a source directory, gives each one a new
name made of a prefix, its index and its original extension, and moves or
copies it into a destination directory.
"""

__version__ = "1.0.0"
__author__ = "batchren project"
__description__ = "Batch rename files based on their folder"

from .main import (
    BatchRenamer,
    HashCalculator,
    RenameConfig,
    TransferExecutor,
    TransferMode,
    TransferPair,
    TransferResult,
    TransferState,
    VerificationError,
    generate_pairs,
    list_source_files,
    main,
    resolve_prefix,
)

__all__ = [
    "BatchRenamer",
    "HashCalculator",
    "RenameConfig",
    "TransferExecutor",
    "TransferMode",
    "TransferPair",
    "TransferResult",
    "TransferState",
    "VerificationError",
    "generate_pairs",
    "list_source_files",
    "main",
    "resolve_prefix",
]
