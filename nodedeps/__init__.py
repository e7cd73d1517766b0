"""nodedeps: checksum-verified dependency extraction for npm, pnpm and yarn projects."""

__version__ = "0.3.0"
