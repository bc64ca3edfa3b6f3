"""
Stock recommender: feed synchronization and recommendation ranking engine.

Keeps a local SQLite store in step with a paginated third-party
stock-recommendation feed and serves "best" and "similar" stock queries from
a static weighted scoring model.
"""

__version__ = "0.1.0"
