#!/usr/bin/env python3
"""Run the Flask app locally for development."""
import os

from dotenv import load_dotenv

# .env supplies MAPPING_ENCRYPTION_KEY and PSEUDONYMIZATION_API_KEYS locally
load_dotenv()

os.environ.setdefault('ENVIRONMENT', 'development')

from app import create_app

app = create_app()

if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=5001)
