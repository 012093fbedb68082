# backend/wsgi.py
# Entry point for gunicorn/flask: FLASK_APP=wsgi.py
from theaterpos import create_app

app = create_app()
