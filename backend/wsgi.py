# backend/wsgi.py
from cardvault import create_app

app = create_app()
