"""autorepair CLI - Typer-based command-line interface.

Usage::

    autorepair --help
    autorepair config show --format json
    autorepair simulate --keyspace ks --table users --table events
"""
