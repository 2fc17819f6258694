"""Route Modules — one file per resource/concern.

Invariants:
    - Each module defines its own APIRouter with prefix and tags
    - Feature routers are listed in app/api/router.py; health is registered by create_app
"""
