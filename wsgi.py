"""
Flask-Migrate / Alembic entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi db migrate -m "description"
"""

from plm import create_app

app = create_app()
