"""
API package for the landscape designer FastAPI backend.

This package provides the REST API endpoints for:
- Photo redesign, layout refinement and customization (designer.py)
- Image upload and validation (images.py)
- Free-tier usage and rate limits (usage.py, usage_ledger.py)
- Saved redesign projects (projects.py, project_store.py)
- Designer session and navigation state (state.py, session_store.py)
- Polar checkout and subscriptions (checkout.py, subscriptions.py)
- Polar webhooks (webhooks.py)
- System health and info (system.py)
"""
