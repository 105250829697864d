"""
Main application package for the Flowify backend.

This package contains all the core components of the FastAPI application,
including API endpoints and the application factory (in main.py), Pydantic
schemas (in schemas.py), CRUD operations (in crud.py), database connection
setup and ORM models (in database.py), local asset storage (in storage.py),
configuration loading (in config.py), and the image model client (in ai_core.py).

The application factory 'create_app' is exported from this package
for use by ASGI servers like Uvicorn (with --factory).
"""


from .main import create_app


__all__ = ["create_app"]
