#!/usr/bin/env python3
"""
Run script for the roadside dispatch engine
"""

from roadside import create_app
from roadside.build import build_database
from roadside.logger import get_logger
import sys
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

import argparse

# Note: SECRET_KEY and gateway credentials are read from the environment.
# Run 'python generate_env.py' to create a .env file with secure values.

app = create_app()
logger = get_logger("roadside.run")


def parse_arguments():
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(description='Roadside Request Dispatch & Lifecycle Engine')
    parser.add_argument('--build-only', action='store_true',
                        help='Build database tables (and demo data unless disabled), then exit')
    parser.add_argument('--no-demo-data', action='store_false', dest='demo_data',
                        help='Do not insert the demo admin, customer and mechanics')
    return parser.parse_args()


if __name__ == '__main__':
    args = parse_arguments()

    logger.debug("Starting roadside dispatch engine...")
    build_database(demo_data=args.demo_data, app=app)

    if args.build_only:
        logger.debug("Build completed. Exiting without starting web server.")
        sys.exit(0)

    # FLASK_DEBUG: Enable/disable debug mode (default: False for security)
    debug_mode = os.environ.get('FLASK_DEBUG', 'False').lower() in ('true', '1', 'yes', 'on')

    # USE_RELOADER: Enable/disable auto-reloader (default: False in production)
    use_reloader = os.environ.get('USE_RELOADER', 'False').lower() in ('true', '1', 'yes', 'on')

    host = os.environ.get('FLASK_HOST', '127.0.0.1')
    port = int(os.environ.get('FLASK_PORT', '5000'))

    if debug_mode:
        logger.warning("DEBUG MODE ENABLED - Do not use in production!")

    logger.info(f"Starting server on {host}:{port} (debug={debug_mode}, reloader={use_reloader})")
    app.run(debug=debug_mode, host=host, port=port, use_reloader=use_reloader)
