"""Server building blocks: frame timers, HTTP client, Redis helpers, web helpers and TCP bookkeeping."""

__version__ = "0.1.0"