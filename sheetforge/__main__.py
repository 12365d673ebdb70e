# File: sheetforge/__main__.py
"""
SheetForge - Module entry point.

Allows running the generator directly via::

    python -m sheetforge --schema schema.xlsx --output ./admin

This module simply delegates to the CLI entry point defined in ``sheetforge.cli``.
"""

from __future__ import annotations


def main() -> None:
    """Delegate to the CLI main function."""
    from sheetforge.cli import cli_main
    cli_main()


if __name__ == "__main__":
    main()
