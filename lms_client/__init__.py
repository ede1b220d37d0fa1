"""
LMS client package.

Token-bearing HTTP client with one-shot silent refresh, a query-key scoped
cache with stale-while-revalidate, and optimistic mutations with rollback,
for the school learning-management REST API.
"""

__version__ = "1.0.0"

# Subpackages are imported explicitly (lms_client.client, lms_client.cache...);
# settings read the environment when first imported.

__all__ = ["__version__"]
