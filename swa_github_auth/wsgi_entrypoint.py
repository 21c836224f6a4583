"""Entry point module for WSGI servers

Point your WSGI server (uWSGI, gunicorn, ...) at
`swa_github_auth.wsgi_entrypoint:app`.
You do not need it for local development.
"""

from .app import init_app

app = init_app()
