"""
Flask-Migrate / Alembic entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi recalculate-rollups
    gunicorn wsgi:app
"""

from worktrack import create_app

app = create_app()
