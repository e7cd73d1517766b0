"""CLI subcommands for nodedeps."""
