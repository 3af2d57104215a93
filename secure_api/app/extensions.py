"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy as a module-level object so models can declare
themselves against it without circular imports.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` from here wherever a model or session is needed.

Do not pass the app object to SQLAlchemy() at import time — that would
prevent running tests with a separate test app instance.

The auth services themselves are NOT created here. They are built per app
in the factory (services/container.py::build_auth_components) and stored on
app.extensions["auth"], so each app instance carries its own configuration.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
