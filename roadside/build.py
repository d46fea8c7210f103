#!/usr/bin/env python3
"""
Database build for the roadside dispatch engine
Creates tables and, optionally, demo users loaded from build_data_demo.json
"""

import json
import math
from pathlib import Path

from roadside import create_app, db
from roadside.buisness.dispatching.candidate_finder import KM_PER_DEGREE_LAT
from roadside.logger import get_logger

logger = get_logger("roadside.build")

DEMO_DATA_FILE = Path(__file__).parent / 'data' / 'core' / 'build_data_demo.json'


def ring_positions(latitude, longitude, radius_km, count):
    """Evenly spaced points on a circle of radius_km around (latitude, longitude)"""
    positions = []
    for index in range(count):
        bearing = 2 * math.pi * index / count
        dlat = radius_km * math.cos(bearing) / KM_PER_DEGREE_LAT
        dlng = radius_km * math.sin(bearing) / (KM_PER_DEGREE_LAT * math.cos(math.radians(latitude)))
        positions.append((round(latitude + dlat, 6), round(longitude + dlng, 6)))
    return positions


def load_demo_data(path=DEMO_DATA_FILE):
    if not path.exists():
        error_msg = f"Demo data file not found: {path}"
        logger.error(error_msg)
        raise FileNotFoundError(error_msg)

    with open(path, 'r') as f:
        return json.load(f)


def insert_demo_data(demo):
    """
    Insert the demo admin, customer and a ring of available mechanics.

    Users are matched by email, so running the build twice inserts nothing new.
    """
    from roadside.data.core.user_info.user import User

    rows = [dict(user) for user in demo.get('Users', {}).values()]

    center = demo['Center']
    ring = demo.get('Mechanic_Ring')
    if ring:
        ratings = ring.get('ratings') or []
        points = ring_positions(center['latitude'], center['longitude'], ring['radius_km'], ring['count'])
        for index, (lat, lng) in enumerate(points, start=1):
            rows.append({
                'name': f"{ring['name_prefix']} {index}",
                'email': ring['email_pattern'].format(index=index),
                'role': User.ROLE_MECHANIC,
                'is_available': True,
                'latitude': lat,
                'longitude': lng,
                'rating': ratings[index - 1] if index <= len(ratings) else 0.0,
            })

    existing = {email for (email,) in db.session.query(User.email).all()}
    new_rows = [row for row in rows if row['email'] not in existing]
    if not new_rows:
        logger.info("Demo data already present, skipping insertion")
        return []

    users = User.bulk_create_from_dicts(new_rows)
    logger.info(f"Inserted {len(users)} demo users")
    return users


def build_database(demo_data=True, app=None):
    """
    Create all tables and optionally insert demo data.

    Args:
        demo_data (bool): Insert the demo users (default: True)
        app: Flask app to build into; a new one is created when omitted
    """
    app = app or create_app()

    with app.app_context():
        logger.info(f"Starting database build (demo data: {demo_data})")
        db.create_all()
        logger.info("All database tables created")

        if demo_data:
            insert_demo_data(load_demo_data())

        logger.info("Database build completed successfully")
    return app


if __name__ == '__main__':
    import sys

    build_database(demo_data='--no-demo-data' not in sys.argv[1:])
