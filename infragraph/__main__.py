"""Entry point for `python -m infragraph`.

Usage:
    python -m infragraph plan -p FluxRepoURL=... -p FluxRepoPath=...
    uv run python -m infragraph apply --yes
"""

from __future__ import annotations

from infragraph.cli import cli

cli()
