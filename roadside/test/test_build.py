"""
Database build and demo data
"""
from conftest import CENTER
from roadside.build import build_database, load_demo_data, ring_positions
from roadside.buisness.dispatching.candidate_finder import haversine_km
from roadside.data.core.user_info.user import User


def test_ring_positions_are_on_the_circle():
    points = ring_positions(CENTER[0], CENTER[1], 4.0, 6)
    assert len(points) == 6
    for lat, lng in points:
        assert abs(haversine_km(CENTER[0], CENTER[1], lat, lng) - 4.0) < 0.05


def test_build_inserts_demo_users_once(app):
    build_database(demo_data=True, app=app)
    build_database(demo_data=True, app=app)

    demo = load_demo_data()
    expected = len(demo['Users']) + demo['Mechanic_Ring']['count']
    assert User.query.count() == expected

    mechanics = User.query.filter_by(role=User.ROLE_MECHANIC).all()
    assert all(m.is_available and m.has_position for m in mechanics)


def test_build_without_demo_data(app):
    build_database(demo_data=False, app=app)
    assert User.query.count() == 0
