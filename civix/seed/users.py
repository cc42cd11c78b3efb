# Seed data: Users (citizens, volunteers, officials, admin)

from ..config import new_id, now_utc
from ..identity import pwd_context

# ---------------------------------------------------------------------------
# Raw user definitions
# ---------------------------------------------------------------------------
USERS = [
    # ---- Citizens (3) ----
    {"username": "citizen1", "password": "citizen123",
     "full_name": "Maya Fernandes", "email": "maya.fernandes@email.com",
     "location": "Riverside", "role": "citizen"},

    {"username": "citizen2", "password": "citizen123",
     "full_name": "Tomas Okafor", "email": "tomas.okafor@email.com",
     "location": "Riverside", "role": "citizen"},

    {"username": "citizen3", "password": "citizen123",
     "full_name": "Leila Haddad", "email": "leila.haddad@email.com",
     "location": "Old Town", "role": "citizen"},

    # ---- Volunteers (2) ----
    {"username": "volunteer1", "password": "volunteer123",
     "full_name": "Sam Whitaker", "email": "sam.whitaker@volunteers.civix.org",
     "location": "Riverside", "role": "volunteer"},

    {"username": "volunteer2", "password": "volunteer123",
     "full_name": "Priya Raman", "email": "priya.raman@volunteers.civix.org",
     "location": "Old Town", "role": "volunteer"},

    # ---- Officials (2) ----
    {"username": "official1", "password": "official123",
     "full_name": "Daniel Brooks, Public Works", "email": "d.brooks@city.gov",
     "location": "Riverside", "role": "official"},

    {"username": "official2", "password": "official123",
     "full_name": "Grace Lindqvist, Parks Department", "email": "g.lindqvist@city.gov",
     "location": "Old Town", "role": "official"},

    # ---- Admin (1) ----
    {"username": "admin", "password": "admin123",
     "full_name": "System Administrator", "email": "admin@city.gov",
     "location": None, "role": "admin"},
]

# ---------------------------------------------------------------------------
# Import function
# ---------------------------------------------------------------------------
def import_users(db) -> dict:
    """Insert seed users into MongoDB. Returns {username: _id} mapping."""
    print("\n  Importing seed users...")
    user_ids = {}
    for u in USERS:
        uid = new_id()
        db.users.insert_one({
            "_id": uid,
            "username": u["username"],
            "hashed_password": pwd_context.hash(u["password"]),
            "full_name": u["full_name"],
            "email": u["email"],
            "location": u["location"],
            "role": u["role"],
            "created_at": now_utc(),
        })
        user_ids[u["username"]] = uid
        print(f"    {u['username']:20s}  ({u['role']})")
    print(f"  => {len(USERS)} users created")
    return user_ids
