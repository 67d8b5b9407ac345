"""kubesync command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``kubesync`` script).
"""

from kubesync.cli.main import cli

__all__ = ["cli"]
