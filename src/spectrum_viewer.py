#!/usr/bin/env python3
"""Canonical entry point for the spectrum viewer."""

from spectrum_scope.cli import main


if __name__ == "__main__":
    main()
