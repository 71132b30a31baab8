"""Synthetic concurrent load generator for Socket.IO chat services.

Simulated users authenticate over the REST API, open a Socket.IO channel, join a
shared room and exchange timed messages while ``metrics`` aggregates counters
and latency statistics for the live reporter.
"""

__version__ = "0.1.0"
