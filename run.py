#!/usr/bin/env python3
"""
Run script for the Restaurant Back Office.
This script initializes the database and starts the Flask application.
"""

import os
import sys

from app import create_app, initialize_database


def main():
    print("Starting Restaurant Back Office...")
    app = create_app()

    print("Initializing database...")
    initialize_database(app)

    port = int(os.getenv('PORT', '5000'))
    print("Starting Flask server...")
    print(f"API base URL: http://localhost:{port}/api")
    print("Press Ctrl+C to stop the server")

    app.run(debug=app.config.get('DEBUG', False), host='0.0.0.0', port=port)


if __name__ == '__main__':
    try:
        main()
    except KeyboardInterrupt:
        print("\nShutting down server...")
        sys.exit(0)
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
