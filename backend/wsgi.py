# backend/wsgi.py
from fabricstock import create_app

app = create_app()
