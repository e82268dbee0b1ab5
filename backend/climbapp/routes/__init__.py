# Routes package init
"""
ClimbApp Backend — API Routes Package
=====================================

What:  HTTP route handlers; thin wrappers around the services.

Route Inventory:
    - sites.py:            /api/v1/sites                       (site CRUD)
    - climbing_routes.py:  /api/v1/sites/{site_id}/routes      (route CRUD)
    - query.py:            POST /api/v1/query                  (photo lookup)
    - targets.py:          /api/v1/target-sets, /api/v1/targets (recognition catalog)
    - health.py:           GET  /health

Errors are raised as ClimbingAppError subclasses and rendered by the global
handlers in main.py.
"""
