"""CLI entry point for promptmint.cli module.

Enables execution via: python -m promptmint.cli
"""

from promptmint.cli.commands import main

if __name__ == "__main__":
    main()
