"""kubepivot command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``kubepivot`` script).
"""

from kubepivot.cli.main import cli

__all__ = ["cli"]
