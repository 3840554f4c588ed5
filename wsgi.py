"""WSGI entry point for Gunicorn."""
import sys
import os

# Ensure the project root is in the Python path
sys.path.insert(0, os.path.dirname(__file__))

from backoffice import create_app
from backoffice.services.mcg_sync_service import start_mcg_scheduler

# Create the application instance
app = create_app()
start_mcg_scheduler(app)

if __name__ == "__main__":
    app.run()
