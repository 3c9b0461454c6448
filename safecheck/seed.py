from sqlmodel import Session, select
from .database import engine, init_db
from .models import User
from .schedule import Schedule
from .store import SafeCheckStore

USERS = [
    {
        "name": "Margaret Lane",
        "email": "margaret@example.com",
        "role": "user",
        "schedule": {"frequency": "twice-daily", "times": ["08:00", "20:00"], "grace_period_minutes": 30},
        "contacts": [
            {"name": "Ellen Lane", "email": "ellen@example.com", "phone": "+1 (555) 123-4567", "relationship": "daughter"},
        ],
    },
    {
        "name": "Tom Ortiz",
        "email": "tom@example.com",
        "role": "user",
        "schedule": {"frequency": "weekly", "times": ["10:00"], "days": [1, 4]},
        "contacts": [
            {"name": "Rosa Ortiz", "email": "rosa@example.com", "relationship": "sister"},
        ],
    },
    {"name": "Admin", "email": "admin@safecheck.app", "role": "admin"},
]


def run():
    init_db()
    with Session(engine) as s:
        store = SafeCheckStore(s)
        for u in USERS:
            if s.exec(select(User).where(User.email == u["email"])).first():
                continue
            user = store.create_user(name=u["name"], email=u["email"], role=u["role"])
            if "schedule" in u:
                store.save_schedule(user.id, Schedule.build(**u["schedule"]))
            for c in u.get("contacts", []):
                store.add_contact(user.id, **c)
    print("Seed complete")


if __name__ == "__main__":
    run()
