"""reposync: mirror upstream repositories into a durable local ledger."""

__version__ = "0.1.0"
