"""
Package entry point.

Allows running the application via:

    python -m pastecal

This simply forwards execution to pastecal.cli.main().
"""

from pastecal.cli import main

if __name__ == "__main__":
    main()
