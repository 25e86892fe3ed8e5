"""infragraph command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``infragraph`` script).
"""

from infragraph.cli.main import cli

__all__ = ["cli"]
