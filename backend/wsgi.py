# backend/wsgi.py
from mfgledger import create_app

app = create_app()
