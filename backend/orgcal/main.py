from datetime import datetime, date, timedelta, timezone
from typing import Optional
from pathlib import Path
import logging
import os

from fastapi import FastAPI, Depends, HTTPException, status, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session
from sqlalchemy import select, and_, or_, delete, inspect, text
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# ── local modules ───────────────────────────────────────────────────
from .db import engine, get_db
from .models import Event, Room
from .schemas import (
    EventCreated, EventIn, EventOut, PositionedOut, RecurrenceIn,
    RoomIn, RoomOut, RuleIn, RuleOut, Scope, StatusIn,
)
from .recurrence import (
    NO_RECURRENCE, RecurrenceConfigError, cleared, decode, default_config, encode, summarize,
)
from .instances import Occurrence, expand_series
from .conflicts import (
    BLOCKING_STATUSES, Reservation, RoomPolicy, find_series_conflict, overlaps,
)
from .layout import events_for_day, pack
# ────────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

MAX_INSTANCES = int(os.getenv("RECURRENCE_MAX_INSTANCES", "100"))
MIN_EVENT_HEIGHT = float(os.getenv("CALENDAR_MIN_EVENT_HEIGHT", "20"))

app = FastAPI(title="Org Calendar API")

# ───────────────────────── CORS ─────────────────────────────────────
from fastapi.middleware.cors import CORSMiddleware

def _clean(s: str | None) -> str | None:
    return s.strip().rstrip("/") if s and s.strip() else None

FRONTEND_ORIGIN = _clean(os.getenv("FRONTEND_ORIGIN")) or "http://localhost:5173"
_raw_extra = os.getenv("EXTRA_CORS_ORIGINS", "")
EXTRA = [x for x in (_clean(p) for p in _raw_extra.split(",")) if x]
allow_origins = ["*"] if "*" in EXTRA else [o for o in {FRONTEND_ORIGIN, *EXTRA} if o]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=86400,
)

# ───────────────────────── DB migrations (optional) ─────────────────
from alembic import command
from alembic.config import Config

def run_migrations() -> None:
    app_dir = Path(__file__).resolve().parent
    cfg = Config(str(app_dir / "alembic.ini"))
    cfg.set_main_option("script_location", str(app_dir / "migrations"))
    if "DATABASE_URL" in os.environ:
        cfg.set_main_option("sqlalchemy.url", os.environ["DATABASE_URL"])
    command.upgrade(cfg, "head")

@app.on_event("startup")
def on_startup():
    if os.getenv("AUTO_MIGRATE") == "1":
        logger.info("running migrations")
        run_migrations()

# ───────────────────────── Lifecycle & health ───────────────────────
@app.get("/health")
def health_check():
    return {"status": "ok"}

@app.get("/")
def read_root():
    return {"message": "FastAPI backend is running."}

@app.get("/dbcheck")
def dbcheck(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    tables = sorted(inspect(engine).get_table_names())
    return {"db": "ok", "tables": tables}

# ───────────────────────── Time helpers ─────────────────────────────
def pick_tz(name: Optional[str]) -> ZoneInfo:
    if not name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(status_code=400, detail=f"Unknown timezone: {name}")

def to_utc(dt: datetime, tz: ZoneInfo | None = None) -> datetime:
    """Naive values are wall time in ``tz``; stored values are always UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz or timezone.utc)
    return dt.astimezone(timezone.utc)

def _require_order(start: datetime, end: datetime) -> None:
    if end <= start:
        raise HTTPException(status_code=422, detail="End time must be after start time")

# ───────────────────────── Room / reservation snapshot ──────────────
def _lock_room(db: Session, room_id: int) -> Room:
    # FOR UPDATE serializes concurrent bookings of one room (no-op on SQLite)
    room = db.execute(select(Room).where(Room.id == room_id).with_for_update()).scalar_one_or_none()
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return room

def as_reservation(ev: Event, tz: ZoneInfo | None = None) -> Reservation:
    start, end = to_utc(ev.start), to_utc(ev.end)
    if tz is not None:
        start, end = start.astimezone(tz), end.astimezone(tz)
    return Reservation(
        id=ev.id, room_id=ev.room_id, title=ev.title,
        start=start, end=end, status=ev.status, owner=ev.owner,
    )

def _reservations(db: Session, room_id: int, lo: datetime, hi: datetime) -> list[Reservation]:
    q = select(Event).where(and_(
        Event.room_id == room_id,
        Event.status.in_(BLOCKING_STATUSES),
        Event.start < hi,
        Event.end > lo,
    )).order_by(Event.start.asc())
    return [as_reservation(ev) for ev in db.execute(q).scalars().all()]

def _check_room(db: Session, room: Room, occurrences: list[Occurrence], exclude_ids=()) -> None:
    lo = min(o.start for o in occurrences)
    hi = max(o.end for o in occurrences)
    existing = _reservations(db, room.id, lo, hi)
    occ, result = find_series_conflict(
        RoomPolicy(room.id, room.allows_overlap), occurrences, existing, exclude_ids,
    )
    if result.conflict:
        logger.warning("room %s conflict at %s with event %s", room.id, occ.start, result.with_.id)
        raise HTTPException(status_code=409, detail=result.message)

def _series_rows(db: Session, ev: Event, scope: str) -> list[Event]:
    if scope != "series" or not ev.is_recurring:
        return [ev]
    root = ev.series_root
    q = select(Event).where(or_(Event.id == root, Event.series_id == root)).order_by(Event.start.asc())
    return list(db.execute(q).scalars().all())

# ───────────────────────── Rooms ────────────────────────────────────
@app.get("/rooms", response_model=list[RoomOut])
def list_rooms(db: Session = Depends(get_db)):
    return db.execute(select(Room).order_by(Room.name.asc())).scalars().all()

@app.post("/rooms", response_model=RoomOut, status_code=status.HTTP_201_CREATED)
def create_room(payload: RoomIn, db: Session = Depends(get_db)):
    room = Room(name=payload.name, allows_overlap=payload.allows_overlap)
    db.add(room)
    db.commit()
    db.refresh(room)
    return room

# ───────────────────────── Recurrence rules ─────────────────────────
@app.post("/recurrence/encode", response_model=RuleOut)
def encode_rule(payload: RecurrenceIn):
    config = cleared(payload.to_config())
    return {"rule": encode(config), "summary": summarize(config)}

@app.post("/recurrence/decode", response_model=RecurrenceIn)
def decode_rule(payload: RuleIn):
    return RecurrenceIn.from_config(decode(payload.rule))

@app.get("/recurrence/defaults", response_model=RecurrenceIn)
def recurrence_defaults(
    frequency: str = Query(...),
    start: Optional[datetime] = Query(default=None),
    tz: Optional[str] = Query(default=None),
):
    zone = pick_tz(tz)
    # the one place "now" seeds a recurrence
    seed = to_utc(start, zone).astimezone(zone) if start else datetime.now(zone)
    return RecurrenceIn.from_config(default_config(frequency, seed))

# ───────────────────────── Event CRUD ───────────────────────────────
@app.get("/events", response_model=list[EventOut])
def list_events(
    start: datetime = Query(...),
    end: datetime = Query(...),
    room_id: Optional[int] = Query(default=None, alias="roomId"),
    db: Session = Depends(get_db),
):
    start_dt, end_dt = to_utc(start), to_utc(end)
    cond = [Event.start < end_dt, Event.end > start_dt]
    if room_id is not None:
        cond.append(Event.room_id == room_id)
    q = select(Event).where(and_(*cond)).order_by(Event.start.asc())
    return db.execute(q).scalars().all()

@app.get("/events/{event_id}", response_model=EventOut)
def get_event(event_id: int, db: Session = Depends(get_db)):
    ev = db.get(Event, event_id)
    if not ev:
        raise HTTPException(status_code=404, detail="Event not found")
    return ev

@app.post("/events", response_model=EventCreated, status_code=status.HTTP_201_CREATED)
def create_event(payload: EventIn, db: Session = Depends(get_db)):
    tz = pick_tz(payload.tz)
    start_dt, end_dt = to_utc(payload.start, tz), to_utc(payload.end, tz)
    _require_order(start_dt, end_dt)

    config = cleared(payload.recurrence.to_config()) if payload.recurrence else NO_RECURRENCE
    local_start, local_end = start_dt.astimezone(tz), end_dt.astimezone(tz)
    try:
        series = expand_series(local_start, local_end, config, MAX_INSTANCES)
    except RecurrenceConfigError as exc:
        raise HTTPException(status_code=422, detail=exc.errors)
    if len(series) - 1 >= MAX_INSTANCES:
        logger.warning("series %r capped at %d instances", payload.title, MAX_INSTANCES)

    series = [Occurrence(to_utc(o.start), to_utc(o.end)) for o in series]
    room = _lock_room(db, payload.room_id)
    _check_room(db, room, series)

    common = dict(
        title=payload.title, description=payload.description, room_id=room.id,
        status=payload.status, owner=payload.owner, is_recurring=config.is_recurring,
    )
    parent = Event(start=series[0].start, end=series[0].end,
                   recurrence_rule=encode(config, local_start), **common)
    db.add(parent)
    db.flush()
    db.add_all([Event(start=o.start, end=o.end, series_id=parent.id, **common) for o in series[1:]])
    db.commit()
    db.refresh(parent)
    logger.info("created event %s with %d extra occurrences in room %s", parent.id, len(series) - 1, room.id)

    out = EventOut.model_validate(parent).model_dump()
    return EventCreated(**out, instances=len(series) - 1, summary=summarize(config))

@app.put("/events/{event_id}", response_model=EventOut)
def update_event(
    event_id: int,
    payload: EventIn,
    scope: Scope = Query(default="single"),
    db: Session = Depends(get_db),
):
    ev = db.get(Event, event_id)
    if not ev:
        raise HTTPException(status_code=404, detail="Event not found")

    tz = pick_tz(payload.tz)
    start_dt, end_dt = to_utc(payload.start, tz), to_utc(payload.end, tz)
    _require_order(start_dt, end_dt)

    rows = _series_rows(db, ev, scope)
    # same wall-clock shift for every row, so DST doesn't move later instances
    shift = start_dt.astimezone(tz) - to_utc(ev.start).astimezone(tz)
    duration = end_dt - start_dt
    targets = {}
    for row in rows:
        new_start = to_utc(to_utc(row.start).astimezone(tz) + shift)
        targets[row.id] = Occurrence(new_start, new_start + duration)
    targets[ev.id] = Occurrence(start_dt, end_dt)

    room = _lock_room(db, payload.room_id)
    _check_room(db, room, list(targets.values()), exclude_ids=[r.id for r in rows])

    for row in rows:
        row.title = payload.title
        row.description = payload.description
        row.room_id = room.id
        row.start = targets[row.id].start
        row.end = targets[row.id].end
        if payload.owner is not None:
            row.owner = payload.owner

    db.commit()
    db.refresh(ev)
    logger.info("updated %d row(s) from event %s (scope=%s)", len(rows), ev.id, scope)
    return ev

@app.patch("/events/{event_id}/status", response_model=EventOut)
def update_status(
    event_id: int,
    payload: StatusIn,
    scope: Scope = Query(default="single"),
    db: Session = Depends(get_db),
):
    ev = db.get(Event, event_id)
    if not ev:
        raise HTTPException(status_code=404, detail="Event not found")

    rows = _series_rows(db, ev, scope)
    if payload.status in BLOCKING_STATUSES:
        # a row leaving draft/rejected/cancelled starts holding the room again
        waking = [r for r in rows if r.status not in BLOCKING_STATUSES]
        if waking:
            room = _lock_room(db, ev.room_id)
            occs = [Occurrence(to_utc(r.start), to_utc(r.end)) for r in waking]
            _check_room(db, room, occs, exclude_ids=[r.id for r in rows])

    for row in rows:
        row.status = payload.status
    db.commit()
    db.refresh(ev)
    return ev

@app.delete("/events/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(
    event_id: int,
    scope: Scope = Query(default="single"),
    db: Session = Depends(get_db),
):
    ev = db.get(Event, event_id)
    if not ev:
        raise HTTPException(status_code=404, detail="Event not found")
    root_id = ev.series_root
    if scope == "series" and ev.is_recurring:
        # children first so the self-referencing FK never dangles
        removed = db.execute(delete(Event).where(Event.series_id == root_id)).rowcount
        removed += db.execute(delete(Event).where(Event.id == root_id)).rowcount
    else:
        if ev.id == root_id and ev.is_recurring:
            # keep the rest of the series together under the next occurrence
            children = db.execute(
                select(Event).where(Event.series_id == root_id).order_by(Event.start.asc())
            ).scalars().all()
            if children:
                heir = children[0]
                heir.series_id = None
                heir.recurrence_rule = ev.recurrence_rule
                for child in children[1:]:
                    child.series_id = heir.id
                db.flush()
        db.delete(ev)
        removed = 1
    db.commit()
    logger.info("deleted %d row(s) from event %s (scope=%s)", removed, event_id, scope)
    return

# ───────────────────────── Day layout ───────────────────────────────
@app.get("/layout", response_model=list[PositionedOut])
def day_layout(
    day: date = Query(...),
    tz: Optional[str] = Query(default=None),
    start_hour: int = Query(default=0, alias="startHour", ge=0, le=23),
    px_per_minute: float = Query(default=1.0, alias="pxPerMinute", gt=0),
    room_id: Optional[int] = Query(default=None, alias="roomId"),
    db: Session = Depends(get_db),
):
    zone = pick_tz(tz)
    lo = datetime(day.year, day.month, day.day, tzinfo=zone).astimezone(timezone.utc)
    hi = lo + timedelta(days=1)
    cond = [Event.start < hi, Event.end > lo, ~Event.status.in_(("rejected", "cancelled"))]
    if room_id is not None:
        cond.append(Event.room_id == room_id)
    rows = db.execute(select(Event).where(and_(*cond))).scalars().all()

    items = events_for_day([as_reservation(ev, zone) for ev in rows], day)
    return [
        PositionedOut(
            id=p.event.id, title=p.event.title, room_id=p.event.room_id, status=p.event.status,
            start=p.start, end=p.end, column=p.column, totalColumns=p.total_columns,
            topOffsetMinutes=p.top_offset_minutes, heightMinutes=p.height_minutes,
            top=p.top, height=p.height, left=p.left, width=p.width,
        )
        for p in pack(items, start_hour, px_per_minute, MIN_EVENT_HEIGHT)
    ]

# ───────────────────────── Suggest next-free ─────────────────────────
def _z(dt: datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")

@app.get("/suggest")
def suggest_next_free(
    room_id: int = Query(..., alias="roomId"),
    start: datetime = Query(...),
    end: datetime = Query(...),
    db: Session = Depends(get_db),
):
    start_dt, end_dt = to_utc(start), to_utc(end)
    duration = end_dt - start_dt
    if duration.total_seconds() <= 0:
        raise HTTPException(status_code=400, detail="Invalid duration")

    room = db.get(Room, room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    if room.allows_overlap:
        return {"suggestedStart": _z(start_dt), "suggestedEnd": _z(end_dt)}

    # push forward past the latest clash until the slot is free
    new_start, new_end = start_dt, end_dt
    while True:
        clashes = [r for r in _reservations(db, room.id, new_start, new_end)
                   if overlaps(new_start, new_end, r.start, r.end)]
        if not clashes:
            break
        new_start = max(r.end for r in clashes)
        new_end = new_start + duration

    return {"suggestedStart": _z(new_start), "suggestedEnd": _z(new_end)}

# ───────────────────────── ICS export ───────────────────────────────
def _ics_dt(dt: datetime) -> str:
    return to_utc(dt).strftime("%Y%m%dT%H%M%SZ")

def _ics_escape(s: str) -> str:
    return s.replace("\\", "\\\\").replace(";", "\\;").replace(",", "\\,").replace("\n", "\\n")

@app.get("/export/ics")
def export_ics(
    start: datetime = Query(...),
    end: datetime = Query(...),
    room_id: Optional[int] = Query(default=None, alias="roomId"),
    db: Session = Depends(get_db),
):
    start_dt, end_dt = to_utc(start), to_utc(end)
    cond = [Event.start < end_dt, Event.end > start_dt, Event.status.in_(BLOCKING_STATUSES)]
    if room_id is not None:
        cond.append(Event.room_id == room_id)
    rows = db.execute(select(Event).where(and_(*cond)).order_by(Event.start.asc())).scalars().all()

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//OrgCal//Rooms//EN",
    ]
    now_utc = datetime.now(timezone.utc)
    for e in rows:
        lines += [
            "BEGIN:VEVENT",
            f"UID:orgcal-{e.id}@local",
            f"DTSTAMP:{_ics_dt(now_utc)}",
            f"DTSTART:{_ics_dt(e.start)}",
            f"DTEND:{_ics_dt(e.end)}",
            f"SUMMARY:{_ics_escape(e.title or '')}",
            *([f"DESCRIPTION:{_ics_escape(e.description)}"] if e.description else []),
            *([f"RELATED-TO:orgcal-{e.series_id}@local"] if e.series_id else []),
            "END:VEVENT",
        ]
    lines.append("END:VCALENDAR")
    ics = "\r\n".join(lines) + "\r\n"
    return Response(content=ics, media_type="text/calendar")
