# wsgi.py
# gunicorn wsgi:app
from dotenv import load_dotenv
load_dotenv()  # loads .env before config

from family_finance import create_app
app = create_app()
