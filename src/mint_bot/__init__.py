"""mint-bot: sign and submit contract mints from a vault of private keys."""

__version__ = "0.1.0"
