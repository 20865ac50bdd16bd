# backend/wsgi.py
from consignbook import create_app

app = create_app()
