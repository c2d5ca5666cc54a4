"""CLI entry point for sigil.cli module.

Enables execution via: python -m sigil.cli
"""

from sigil.cli.sweep_stuck import main

if __name__ == "__main__":
    main()
