from datetime import datetime, timezone
from fastapi import FastAPI, Depends, HTTPException, status, Header, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
from .config import settings
from .database import get_session, init_db
from .deadlines import alert_deadline, classify, format_time_remaining, time_until_deadline
from .logging_config import setup_logging
from .notifier.transport import build_transport
from .schemas import CheckInIn, ContactIn, ScheduleIn, UserIn
from .store import SafeCheckStore
from .worker import OverdueCheckError, run_overdue_check

app = FastAPI(title="SafeCheck API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ROLES = {"user", "admin"}
MAX_CONTACTS = 5
MAX_HISTORY_PAGE = 200


def rbac(required_roles: set[str]):
    def _dep(x_role: str | None = Header(default=None, convert_underscores=False, alias="X-Role")):
        if not x_role or x_role not in required_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return x_role
    return _dep


def get_store(s: Session = Depends(get_session)) -> SafeCheckStore:
    return SafeCheckStore(s)


def get_transport():
    return build_transport()


def require_cron_secret(authorization: str | None = Header(default=None)):
    if settings.cron_secret and authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def _user_or_404(store: SafeCheckStore, user_id: int):
    u = store.get_user(user_id)
    if not u:
        raise HTTPException(404, "user not found")
    return u


@app.on_event("startup")
def on_startup():
    setup_logging()
    init_db()


@app.get("/health")
def health_check():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


# --- Users ---
@app.post("/api/v1/users")
def register_user(body: UserIn, store: SafeCheckStore = Depends(get_store)):
    return store.create_user(name=body.name, email=body.email, role="user")


@app.get("/api/v1/users", dependencies=[Depends(rbac({"admin"}))])
def list_users(store: SafeCheckStore = Depends(get_store)):
    return {"users": store.list_users()}


@app.get("/api/v1/users/{user_id}")
def get_user(user_id: int, store: SafeCheckStore = Depends(get_store)):
    return _user_or_404(store, user_id)


# --- Emergency contacts ---
@app.get("/api/v1/users/{user_id}/contacts")
def list_contacts(user_id: int, store: SafeCheckStore = Depends(get_store)):
    _user_or_404(store, user_id)
    return {"contacts": store.list_contacts(user_id)}


@app.post("/api/v1/users/{user_id}/contacts")
def add_contact(user_id: int, body: ContactIn, store: SafeCheckStore = Depends(get_store)):
    _user_or_404(store, user_id)
    if len(store.list_contacts(user_id)) >= MAX_CONTACTS:
        raise HTTPException(400, f"at most {MAX_CONTACTS} emergency contacts allowed")
    return store.add_contact(user_id, **body.model_dump())


@app.put("/api/v1/contacts/{contact_id}")
def update_contact(contact_id: int, body: ContactIn, store: SafeCheckStore = Depends(get_store)):
    c = store.get_contact(contact_id)
    if not c:
        raise HTTPException(404, "contact not found")
    return store.update_contact(c, **body.model_dump())


@app.delete("/api/v1/contacts/{contact_id}")
def delete_contact(contact_id: int, store: SafeCheckStore = Depends(get_store)):
    c = store.get_contact(contact_id)
    if not c:
        raise HTTPException(404, "contact not found")
    store.delete_contact(c)
    return {"ok": True}


# --- Schedule ---
@app.get("/api/v1/users/{user_id}/schedule")
def get_schedule(user_id: int, store: SafeCheckStore = Depends(get_store)):
    _user_or_404(store, user_id)
    return {
        **store.get_schedule(user_id).model_dump(),
        "alert_enabled": store.alerts_enabled(user_id),
    }


@app.put("/api/v1/users/{user_id}/schedule")
def save_schedule(user_id: int, body: ScheduleIn, store: SafeCheckStore = Depends(get_store)):
    _user_or_404(store, user_id)
    schedule = body.apply_to(store.get_schedule(user_id))
    alert_enabled = store.alerts_enabled(user_id) if body.alert_enabled is None else body.alert_enabled
    store.save_schedule(user_id, schedule, alert_enabled=alert_enabled)
    return {**schedule.model_dump(), "alert_enabled": alert_enabled}


# --- Check-ins ---
@app.post("/api/v1/users/{user_id}/checkins")
def check_in(user_id: int, body: CheckInIn, store: SafeCheckStore = Depends(get_store)):
    _user_or_404(store, user_id)
    return store.add_check_in(user_id, health_tag=body.health_tag, note=body.note)


@app.get("/api/v1/users/{user_id}/checkins")
def check_in_history(
    user_id: int,
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
    store: SafeCheckStore = Depends(get_store),
):
    _user_or_404(store, user_id)
    return {"checkins": store.list_check_ins(user_id, limit=min(limit, MAX_HISTORY_PAGE), offset=offset)}


@app.get("/api/v1/users/{user_id}/status")
def check_in_status(user_id: int, store: SafeCheckStore = Depends(get_store)):
    _user_or_404(store, user_id)
    now = datetime.now(timezone.utc)
    schedule = store.get_schedule(user_id)
    last = store.latest_check_in(user_id)
    return {
        "user_id": user_id,
        "status": classify(schedule, last, now=now).value,
        "deadline": alert_deadline(schedule, last, now=now).isoformat(),
        "time_remaining": format_time_remaining(time_until_deadline(schedule, last, now=now)),
        "last_check_in": last,
    }


# --- Admin ---
@app.get("/api/v1/admin/schedules", dependencies=[Depends(rbac({"admin"}))])
def admin_schedules(store: SafeCheckStore = Depends(get_store)):
    now = datetime.now(timezone.utc)
    out = []
    for row in store.schedule_overview():
        schedule, last = row["schedule"], row["last_check_in"]
        out.append({
            "user_id": row["user_id"],
            "user_name": row["user_name"],
            "user_email": row["user_email"],
            **schedule.model_dump(),
            "alert_enabled": row["alert_enabled"],
            "updated_at": row["updated_at"],
            "last_checkin": last.timestamp if last else None,
            "last_health_tag": last.health_tag if last else None,
            "status": classify(schedule, last, now=now).value,
        })
    return {"schedules": out}


@app.get("/api/v1/admin/alerts", dependencies=[Depends(rbac({"admin"}))])
def admin_alerts(limit: int = Query(50, ge=1), store: SafeCheckStore = Depends(get_store)):
    return {"alerts": store.recent_alerts(limit=min(limit, MAX_HISTORY_PAGE))}


# --- Periodic trigger ---
@app.api_route("/api/v1/cron/overdue-check", methods=["GET", "POST"], dependencies=[Depends(require_cron_secret)])
def cron_overdue_check(s: Session = Depends(get_session), transport=Depends(get_transport)):
    try:
        summary = run_overdue_check(session=s, transport=transport)
    except OverdueCheckError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"ok": True, **summary.to_dict()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
