"""Local development entry point.

Usage:
    python run.py

In production, serve the app factory with a WSGI server instead, e.g.:
    gunicorn "payhook:create_app()"
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from payhook import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5001)
