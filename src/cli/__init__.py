"""Maintenance command-line tools for SoundMatrix.

- ``python -m src.cli scan`` checks (and optionally repairs) the built
  invariant across stored aggregates.
- ``python -m src.cli batch`` runs the batch coverage driver.
- ``python -m src.cli coverage`` counts artists by lifecycle state.
- ``python -m src.cli register`` adds an artist for the batch driver.

All commands use argparse and build the same component graph as the web
app through ``src.main.build_components``.
"""
