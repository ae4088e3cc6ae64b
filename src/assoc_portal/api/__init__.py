"""
assoc_portal.api

HTTP surface of the association portal (FastAPI backend-for-frontend).

Responsibilities:
- FastAPI app factory and router modules.
- Per-browser portal clients, route guards and error translation.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# The API layer stays thin: request validation + guard + delegation to services.
