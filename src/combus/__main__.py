"""Entry point for ``python -m combus``."""

from .cli import main

main()
