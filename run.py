#!/usr/bin/env python3
"""
Startup script for the visitor dashboard Flask application
"""

import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Check if the backend is configured
if not os.environ.get('SUPABASE_URL') or not os.environ.get('SUPABASE_ANON_KEY'):
    print("Warning: SUPABASE_URL / SUPABASE_ANON_KEY environment variables not set.")
    print("Using default: http://localhost:54321")
    print("Set them in your .env file or environment to connect to your project.")
    print()

from app import configure_logging, create_app
from config.settings import DEBUG, HOST, PORT

if __name__ == '__main__':
    configure_logging()
    print("Starting Visitor Dashboard...")
    print(f"Backend: {os.environ.get('SUPABASE_URL', 'http://localhost:54321')}")
    print(f"Web Interface: http://localhost:{PORT}")
    print("Press Ctrl+C to stop")
    print()

    app = create_app()
    try:
        # The reloader would start a second realtime worker
        app.run(debug=DEBUG, host=HOST, port=PORT, use_reloader=False)
    finally:
        app.extensions['dashboard_registry'].close_all()
        realtime = app.extensions.get('realtime_service')
        if realtime is not None:
            realtime.stop()
