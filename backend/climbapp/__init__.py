"""
ClimbApp Backend — Application Package
======================================

What: Backend for the climbing route catalog: sites and routes CRUD, the
      image-recognition target catalog, and the photo query flow.
Who:  Imported by uvicorn (climbapp.main:app), Alembic and pytest.

Layers:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Orchestration, validation
    ├──────────────────┬──────────────────┤
    │  Models/Schemas  │  Google Cloud    │  ← ORM + Pydantic | Vision, Storage
    ├──────────────────┘                  │
    │        Database (Persistence)       │
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
