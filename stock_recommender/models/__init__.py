"""
Domain models (pydantic v2).

Modules:
  recommendation - Recommendation, FeedPage, SimilarStock, TickerScore.
  weights        - ModelWeights and the default ordered weight tables.
  sync           - SyncRun audit record.
"""
