"""Allow ``python -m src.cli <command>`` execution."""

from src.cli.maintenance import main

main()
