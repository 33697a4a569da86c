# backend/wsgi.py
from metaltrade import create_app

app = create_app()
