"""marketsync: NSE market data synchronization and job scheduling engine."""

__version__ = "0.1.0"
