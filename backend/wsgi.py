# backend/wsgi.py
from filtertrack import create_app

app = create_app()
