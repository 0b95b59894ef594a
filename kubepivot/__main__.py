"""Entry point for `python -m kubepivot`.

Usage:
    python -m kubepivot init --infrastructure docker
    python -m kubepivot pivot --to target-kubeconfig.yaml
"""

from __future__ import annotations

from kubepivot.cli import cli

cli()
