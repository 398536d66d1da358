"""
Module entrypoint for the klauncher CLI.

This file exists so that `python -m klauncher ...` works when the console-script
wrapper is not installed. It delegates to the CLI module.
"""

from __future__ import annotations

from klauncher.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
