"""
WSGI / Flask-Migrate entry point.

Usage:
    flask --app wsgi db upgrade
    flask --app wsgi reconcile-workflows --tenant acme --datasource d1 --file config.json
    gunicorn wsgi:app
"""

from flowconfig import create_app

app = create_app()
