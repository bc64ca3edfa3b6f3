"""
Ingestion layer: external recommendation feed client.

Submodules:
  feed_client - httpx ``FeedClient`` (one page per call) and
                ``get_all_recommendations`` (exhaustive pagination).

Credential placement (.env, gitignored):
  STOCK_RECOMMENDER_FEED_BASE_URL   - feed endpoint
  STOCK_RECOMMENDER_FEED_API_TOKEN  - bearer token
"""
