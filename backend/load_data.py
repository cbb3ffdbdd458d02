"""
Data Loader Script - Seeds users and tests into OA Point.

Users are written straight into the database (there is no registration
endpoint). Tests are then created through the admin API with the first
admin's token, every student is invited, and each test is activated.
Finally a development token is printed for every user.

Usage:
    python load_data.py                              # Uses default URL
    python load_data.py http://localhost:8000         # Custom API URL
    python load_data.py http://backend:8000           # Inside Docker network
"""

import json
import sys
import os
from datetime import timedelta

import httpx

from oapoint.auth import create_access_token
from oapoint.database import create_tables, session_scope
from oapoint.models.user import User, ROLE_ADMIN, ROLE_STUDENT
from oapoint.timeutils import utcnow, isoformat


def post_json(client, url, data, token):
    resp = client.post(url, json=data, headers={"Authorization": f"Bearer {token}"})
    resp.raise_for_status()
    return resp.json()


def patch_json(client, url, token):
    resp = client.patch(url, headers={"Authorization": f"Bearer {token}"})
    resp.raise_for_status()
    return resp.json()


def upsert_users(raw_users):
    """Insert users that do not exist yet (matched by email). Returns all of them."""
    with session_scope() as db:
        users = []
        for raw in raw_users:
            email = raw["email"].strip().lower()
            user = db.query(User).filter(User.email == email).first()
            if user is None:
                user = User(
                    name=raw["name"],
                    email=email,
                    role=raw.get("role", ROLE_STUDENT),
                    registration_number=raw.get("registrationNumber"),
                    phone=raw.get("phone"),
                )
                db.add(user)
            users.append(user)
        db.flush()
        return [(u.id, u.name, u.email, u.role) for u in users]


def with_window(test):
    """Default the availability window to [now - 5 minutes, now + 7 days] when missing."""
    test = dict(test)
    now = utcnow()
    test.setdefault("startDate", isoformat(now - timedelta(minutes=5)))
    test.setdefault("endDate", isoformat(now + timedelta(days=7)))
    return test


def main():
    # Determine API base URL
    api_url = sys.argv[1] if len(sys.argv) > 1 else os.getenv("API_URL", "http://localhost:8000")

    # Locate the data file
    data_file = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "seed_data.json")
    if not os.path.exists(data_file):
        data_file = "seed_data.json"

    if not os.path.exists(data_file):
        print("Error: Could not find seed_data.json")
        sys.exit(1)

    print(f"Loading data from: {data_file}")
    with open(data_file, 'r') as f:
        seed = json.load(f)

    create_tables()
    users = upsert_users(seed.get("users", []))
    admins = [u for u in users if u[3] == ROLE_ADMIN]
    student_ids = [u[0] for u in users if u[3] == ROLE_STUDENT]
    if not admins:
        print("Error: seed data needs at least one admin user")
        sys.exit(1)

    admin_token = create_access_token(admins[0][0])
    print(f"Users ready: {len(admins)} admins, {len(student_ids)} students")
    print(f"Sending tests to: {api_url}")
    print()

    created = []
    with httpx.Client(base_url=api_url, timeout=30.0) as client:
        for raw_test in seed.get("tests", []):
            result = post_json(client, "/api/admin/tests", with_window(raw_test), admin_token)
            test_id = result["test"]["id"]
            if student_ids:
                post_json(client, f"/api/admin/tests/{test_id}/add-students",
                          {"studentIds": student_ids}, admin_token)
            patch_json(client, f"/api/admin/tests/{test_id}/toggle-status", admin_token)
            created.append((test_id, result["test"]["title"], result["test"]["duration"]))

    print("=" * 60)
    print("SEED SUMMARY")
    print("=" * 60)
    for test_id, title, duration in created:
        print(f"  ✅ {title} ({duration} min): {test_id}")
    print()
    print("Development tokens:")
    for user_id, name, email, role in users:
        print(f"  [{role}] {email}: {create_access_token(user_id)}")
    print("=" * 60)
    print()
    print("✅ Data loading complete!")


if __name__ == "__main__":
    main()
