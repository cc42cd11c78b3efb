# Civix Civic-Engagement Portal: Seed Data Importer
# Resets the portal collections in MongoDB and loads demo data
#
# Usage:  python -m civix.importer      (from repo root)
#     or: civix-seed                    (after pip install)

from .config import MONGODB_URL, MONGODB_DB
from .seed.users import import_users, USERS
from .seed.civic import import_complaints, import_petitions, import_polls
from .store import Store, COLLECTIONS


def main():
    print("=" * 64)
    print("  Civix Civic-Engagement Portal — Data Importer")
    print("=" * 64)

    # ------------------------------------------------------------------
    # 1. Connect MongoDB
    # ------------------------------------------------------------------
    print("\n[1/5] Connecting to MongoDB...")
    store = Store.connect(MONGODB_URL, MONGODB_DB)
    db = store.db
    print(f"  Connected: {MONGODB_URL} (database: {MONGODB_DB})")

    # ------------------------------------------------------------------
    # 2. Reset all collections
    # ------------------------------------------------------------------
    print("\n[2/5] Resetting collections...")
    for name in COLLECTIONS:
        db[name].drop()
    store.ensure_indexes()
    print(f"  MongoDB: {', '.join(COLLECTIONS)}")

    # ------------------------------------------------------------------
    # 3. Seed users
    # ------------------------------------------------------------------
    print("\n[3/5] Users")
    user_ids = import_users(db)

    # ------------------------------------------------------------------
    # 4. Seed complaints and petitions
    # ------------------------------------------------------------------
    print("\n[4/5] Complaints & Petitions")
    n_complaints = import_complaints(db, user_ids)
    n_petitions = import_petitions(db, user_ids)

    # ------------------------------------------------------------------
    # 5. Seed polls
    # ------------------------------------------------------------------
    print("\n[5/5] Polls")
    n_polls = import_polls(db, user_ids)

    print("\n" + "=" * 64)
    print("  IMPORT COMPLETE")
    print("=" * 64)
    print(f"  Users:        {len(USERS)}")
    print(f"  Complaints:   {n_complaints}")
    print(f"  Petitions:    {n_petitions}")
    print(f"  Polls:        {n_polls}")
    print(f"  Signatures:   {db.signatures.count_documents({})}")
    print(f"  Votes:        {db.votes.count_documents({})}")
    print()
    print("  Test credentials:")
    print("    Citizen   : citizen1   / citizen123")
    print("    Volunteer : volunteer1 / volunteer123")
    print("    Official  : official1  / official123")
    print("    Admin     : admin      / admin123")
    print("=" * 64)
    store.close()


if __name__ == "__main__":
    main()
