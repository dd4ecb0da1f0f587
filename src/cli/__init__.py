"""Command-line interface: ``ledger`` click group and terminal formatting."""
