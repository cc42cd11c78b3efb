# Seed data: complaints, petitions (with signatures and one hand-off), polls (with votes)

from datetime import timedelta

from ..config import new_id, now_utc
from ..lifecycle import history_entry
from ..store import ballot_key, lock_key

# ---------------------------------------------------------------------------
# Raw definitions
# ---------------------------------------------------------------------------
COMPLAINTS = [
    {"title": "Streetlight out on Mill Road", "category": "lighting", "location": "Riverside",
     "description": "The streetlight opposite number 42 has been dark for two weeks.",
     "created_by": "citizen1", "days_ago": 20, "status": "resolved", "assigned_to": "volunteer1"},
    {"title": "Overflowing bins at the bus depot", "category": "sanitation", "location": "Riverside",
     "description": "Public bins near the depot are overflowing every weekend.",
     "created_by": "citizen2", "days_ago": 6, "status": "in_review", "assigned_to": "volunteer1"},
    {"title": "Pothole at Harbour Street junction", "category": "roads", "location": "Old Town",
     "description": "Deep pothole forming at the junction, cyclists are swerving into traffic.",
     "created_by": "citizen3", "days_ago": 2, "status": "received", "assigned_to": None},
]

PETITIONS = [
    {"title": "Protected bike lane on Canal Avenue", "category": "transport", "location": "Riverside",
     "summary": "Separate cyclists from traffic on the busiest commuter route.",
     "description": "Canal Avenue carries most commuter cyclists but has no protected lane.",
     "target_authority": "City Transport Committee", "signature_goal": 50,
     "creator": "citizen1", "days_ago": 40, "status": "assigned", "assigned_to": "volunteer1",
     "signers": ["citizen2", "citizen3", "volunteer2"]},
    {"title": "Extend library opening hours", "category": "education", "location": "Old Town",
     "summary": "Open the central library until 9pm on weekdays.",
     "description": "Students and shift workers cannot use the library before it closes at 5pm.",
     "target_authority": "Library Board", "signature_goal": 100,
     "creator": "citizen3", "days_ago": 12, "status": "active", "assigned_to": None,
     "signers": ["citizen1", "citizen2"]},
]

POLLS = [
    {"title": "Which park should be renovated first?", "category": "parks",
     "description": "The parks budget covers one full renovation this year.",
     "options": ["Riverside Green", "Old Town Square", "Harbour Gardens"],
     "duration_hours": 24 * 14, "target_location": "Riverside", "created_by": "official1",
     "days_ago": 3, "votes": {"citizen1": "Riverside Green", "citizen2": "Riverside Green",
                              "volunteer1": "Harbour Gardens"}},
    {"title": "Preferred weekly recycling day", "category": "sanitation",
     "description": "Collection routes are being redrawn.",
     "options": ["Monday", "Wednesday", "Friday"],
     "duration_hours": 48, "target_location": "Old Town", "created_by": "official2",
     "days_ago": 30, "votes": {"citizen3": "Friday"}},
]

# Status path each seeded record walks, in order
_COMPLAINT_PATH = ["received", "in_review", "resolved"]
_PETITION_PATH = ["active", "assigned"]


def _history(path, final, actor, start):
    # The starting status is not a transition and has no entry
    stop = path.index(final) + 1
    return [history_entry(s, actor, None, start + timedelta(hours=i)) for i, s in enumerate(path[1:stop], 1)]


# ---------------------------------------------------------------------------
# Import functions
# ---------------------------------------------------------------------------
def import_complaints(db, user_ids: dict) -> int:
    print("\n  Importing complaints...")
    now = now_utc()
    for c in COMPLAINTS:
        created = now - timedelta(days=c["days_ago"])
        doc = {
            "_id": new_id(), "title": c["title"], "description": c["description"],
            "category": c["category"], "location": c["location"],
            "latitude": None, "longitude": None, "photo_url": None,
            "status": c["status"], "created_by": user_ids[c["created_by"]],
            "assigned_to": user_ids.get(c["assigned_to"]),
            "status_history": _history(_COMPLAINT_PATH, c["status"], user_ids["official1"], created),
            "created_at": created, "updated_at": created,
        }
        db.complaints.insert_one(doc)
        if doc["assigned_to"]:
            _seed_assignment(db, "complaint", doc, user_ids["official1"], created,
                             done=c["status"] == "resolved")
        print(f"    [{c['status']:10s}] {c['title']}")
    print(f"  => {len(COMPLAINTS)} complaints created")
    return len(COMPLAINTS)


def import_petitions(db, user_ids: dict) -> int:
    print("\n  Importing petitions...")
    now = now_utc()
    n_sigs = 0
    for p in PETITIONS:
        created = now - timedelta(days=p["days_ago"])
        pid = new_id()
        for i, signer in enumerate(p["signers"]):
            sid = user_ids[signer]
            db.signatures.insert_one({"_id": ballot_key(pid, sid), "petition_id": pid,
                                      "signer_id": sid, "signed_at": created + timedelta(hours=i + 1)})
        n_sigs += len(p["signers"])
        doc = {
            "_id": pid, "title": p["title"], "summary": p["summary"],
            "description": p["description"], "category": p["category"], "location": p["location"],
            "latitude": None, "longitude": None,
            "target_authority": p["target_authority"], "signature_goal": p["signature_goal"],
            "signatures_count": len(p["signers"]), "status": p["status"],
            "creator": user_ids[p["creator"]], "assigned_to": user_ids.get(p["assigned_to"]),
            "official_response": None,
            "status_history": _history(_PETITION_PATH, p["status"], user_ids["official1"], created),
            "comments": [], "created_at": created, "updated_at": created,
        }
        db.petitions.insert_one(doc)
        if doc["assigned_to"]:
            _seed_assignment(db, "petition", doc, user_ids["official1"], created, done=False)
        print(f"    [{p['status']:10s}] {p['title']} ({len(p['signers'])} signatures)")
    print(f"  => {len(PETITIONS)} petitions, {n_sigs} signatures created")
    return len(PETITIONS)


def import_polls(db, user_ids: dict) -> int:
    print("\n  Importing polls...")
    now = now_utc()
    n_votes = 0
    for p in POLLS:
        created = now - timedelta(days=p["days_ago"])
        poll_id = new_id()
        db.polls.insert_one({
            "_id": poll_id, "title": p["title"], "description": p["description"],
            "category": p["category"], "options": p["options"],
            "duration_hours": p["duration_hours"], "target_location": p["target_location"],
            "created_by": user_ids[p["created_by"]], "created_at": created,
        })
        for username, option in p["votes"].items():
            vid = user_ids[username]
            db.votes.insert_one({"_id": ballot_key(poll_id, vid), "poll_id": poll_id, "voter_id": vid,
                                 "selected_option": option, "cast_at": created + timedelta(hours=1)})
        n_votes += len(p["votes"])
        print(f"    {p['title']} ({len(p['votes'])} votes)")
    print(f"  => {len(POLLS)} polls, {n_votes} votes created")
    return len(POLLS)


def _seed_assignment(db, kind: str, subject: dict, assigner_id: str, at, done: bool):
    aid = new_id()
    db.assignments.insert_one({
        "_id": aid, "subject_id": subject["_id"], "subject_kind": kind,
        "assignee_id": subject["assigned_to"], "assigned_by": assigner_id,
        "status": "completed" if done else "assigned", "notify_by_email": False,
        "due_date": None, "assigned_at": at, "updated_at": at,
    })
    if not done:
        db.active_assignments.insert_one(
            {"_id": lock_key(kind, subject["_id"]), "assignment_id": aid, "created_at": at})
