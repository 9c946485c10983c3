"""Typer CLI for querying the tank consumption analytics service.

The application object lives in ``cli.app`` and is not imported here, so
``cli.app`` always names the module.
"""
