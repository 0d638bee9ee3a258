# backend/wsgi.py
from fishstock import create_app

app = create_app()
