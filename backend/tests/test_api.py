"""HTTP layer: booking flow, series scope, layout and export."""

from dateutil.parser import isoparse


def weekly_mondays(count):
    return {"frequency": "weekly", "interval": 1, "daysOfWeek": [1],
            "endType": "after", "occurrences": count}


def list_all(client, room_id=None):
    params = {"start": "2024-01-01T00:00:00Z", "end": "2025-12-31T00:00:00Z"}
    if room_id is not None:
        params["roomId"] = room_id
    r = client.get("/events", params=params)
    assert r.status_code == 200
    return r.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
    body = client.get("/dbcheck").json()
    assert body["db"] == "ok"
    assert "events" in body["tables"]


def test_rooms_roundtrip(client, room, shared_room):
    rooms = client.get("/rooms").json()
    assert {r["name"]: r["allows_overlap"] for r in rooms} == {
        "Main Hall": False, "Other (off site)": True,
    }


class TestCreate:
    def test_single_event(self, client, room, book):
        r = book(room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z", owner="Ana")
        assert r.status_code == 201
        body = r.json()
        assert body["instances"] == 0
        assert body["recurrence_rule"] is None
        assert body["status"] == "pending_review"
        assert isoparse(body["start"]) == isoparse("2024-01-01T09:00:00Z")

    def test_weekly_series_creates_children(self, client, room, book):
        r = book(room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z",
                 recurrence=weekly_mondays(3))
        assert r.status_code == 201
        parent = r.json()
        assert parent["instances"] == 2
        assert parent["recurrence_rule"] == "FREQ=WEEKLY;BYDAY=MO;COUNT=3"
        assert parent["summary"] == "Repeats every week on Monday, for 3 occurrences"

        rows = list_all(client)
        assert [isoparse(e["start"]).day for e in rows] == [1, 8, 15]
        assert all(e["series_id"] == parent["id"] for e in rows[1:])
        assert all(e["is_recurring"] for e in rows)

    def test_series_follows_local_clock_time(self, client, room, book):
        r = book(room["id"], "2024-03-09T09:00:00", "2024-03-09T10:00:00",
                 tz="America/New_York",
                 recurrence={"frequency": "daily", "endType": "after", "occurrences": 2})
        assert r.status_code == 201
        starts = [isoparse(e["start"]) for e in list_all(client)]
        assert [s.hour for s in starts] == [14, 13]  # 09:00 EST, then 09:00 EDT

    def test_end_before_start_is_rejected(self, client, room, book):
        r = book(room["id"], "2024-01-01T10:00:00Z", "2024-01-01T09:00:00Z")
        assert r.status_code == 422

    def test_weekly_without_days_is_rejected(self, client, room, book):
        r = book(room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z",
                 recurrence={"frequency": "weekly", "daysOfWeek": []})
        assert r.status_code == 422
        assert list_all(client) == []

    def test_huge_interval_is_rejected(self, client, room, book):
        r = book(room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z",
                 recurrence={"frequency": "daily", "interval": 3000000})
        assert r.status_code == 422
        assert list_all(client) == []

    def test_series_near_the_end_of_the_calendar_is_truncated(self, client, shared_room, book):
        r = book(shared_room["id"], "9999-12-30T09:00:00Z", "9999-12-30T10:00:00Z",
                 recurrence={"frequency": "daily", "endType": "after", "occurrences": 5})
        assert r.status_code == 201
        assert r.json()["instances"] == 1

    def test_unknown_room(self, client, book):
        r = book(999, "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z")
        assert r.status_code == 404


class TestConflicts:
    def test_overlap_is_refused_with_a_readable_message(self, client, room, book):
        book(room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z",
             title="Choir", owner="Ana")
        r = book(room["id"], "2024-01-01T09:30:00Z", "2024-01-01T10:30:00Z")
        assert r.status_code == 409
        assert "Choir" in r.json()["detail"]
        assert "Ana" in r.json()["detail"]

    def test_back_to_back_is_fine(self, client, room, book):
        book(room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z")
        r = book(room["id"], "2024-01-01T10:00:00Z", "2024-01-01T11:00:00Z")
        assert r.status_code == 201

    def test_shared_room_allows_overlap(self, client, shared_room, book):
        book(shared_room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z")
        r = book(shared_room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z")
        assert r.status_code == 201

    def test_drafts_do_not_hold_the_room(self, client, room, book):
        book(room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z", status="draft")
        r = book(room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z")
        assert r.status_code == 201

    def test_a_later_occurrence_can_block_the_whole_series(self, client, room, book):
        book(room["id"], "2024-01-15T09:30:00Z", "2024-01-15T11:00:00Z", title="Retreat")
        r = book(room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z",
                 recurrence=weekly_mondays(3))
        assert r.status_code == 409
        assert "Retreat" in r.json()["detail"]
        assert len(list_all(client)) == 1

    def test_approving_a_draft_rechecks_the_room(self, client, room, book):
        draft = book(room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z", status="draft").json()
        book(room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z")
        r = client.patch(f"/events/{draft['id']}/status", json={"status": "approved"})
        assert r.status_code == 409


class TestSeriesScope:
    def _series(self, room, book):
        r = book(room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z",
                 recurrence=weekly_mondays(3))
        return r.json()

    def test_editing_one_occurrence_does_not_clash_with_itself(self, client, room, book):
        ev = book(room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z").json()
        r = client.put(f"/events/{ev['id']}", json={
            "title": "Moved", "room_id": room["id"],
            "start": "2024-01-01T09:30:00Z", "end": "2024-01-01T10:30:00Z",
        })
        assert r.status_code == 200
        assert r.json()["title"] == "Moved"

    def test_series_update_shifts_every_row(self, client, room, book):
        parent = self._series(room, book)
        r = client.put(f"/events/{parent['id']}", params={"scope": "series"}, json={
            "title": "Later", "room_id": room["id"],
            "start": "2024-01-01T11:00:00Z", "end": "2024-01-01T12:30:00Z",
        })
        assert r.status_code == 200
        rows = list_all(client)
        assert {e["title"] for e in rows} == {"Later"}
        assert [(isoparse(e["start"]).day, isoparse(e["start"]).hour) for e in rows] == [
            (1, 11), (8, 11), (15, 11),
        ]
        assert all(isoparse(e["end"]) - isoparse(e["start"]) == isoparse("2024-01-01T12:30:00Z")
                   - isoparse("2024-01-01T11:00:00Z") for e in rows)

    def test_series_status_change(self, client, room, book):
        parent = self._series(room, book)
        child = list_all(client)[2]
        r = client.patch(f"/events/{child['id']}/status", params={"scope": "series"},
                         json={"status": "approved"})
        assert r.status_code == 200
        assert {e["status"] for e in list_all(client)} == {"approved"}

    def test_delete_series(self, client, room, book):
        parent = self._series(room, book)
        child = list_all(client)[1]
        r = client.delete(f"/events/{child['id']}", params={"scope": "series"})
        assert r.status_code == 204
        assert list_all(client) == []

    def test_deleting_the_first_occurrence_keeps_the_rest_linked(self, client, room, book):
        parent = self._series(room, book)
        r = client.delete(f"/events/{parent['id']}")
        assert r.status_code == 204
        rows = list_all(client)
        assert len(rows) == 2
        heir, other = rows
        assert heir["series_id"] is None
        assert heir["recurrence_rule"] == parent["recurrence_rule"]
        assert other["series_id"] == heir["id"]

    def test_missing_event(self, client):
        assert client.delete("/events/12345").status_code == 404
        assert client.get("/events/12345").status_code == 404


class TestRecurrenceEndpoints:
    def test_encode(self, client):
        r = client.post("/recurrence/encode", json={
            "frequency": "monthly", "monthlyType": "weekday", "weekOfMonth": -1,
            "dayOfWeekForMonth": 5, "endType": "on", "endDate": "2026-03-31",
        })
        assert r.json() == {
            "rule": "FREQ=MONTHLY;BYDAY=-1FR;UNTIL=20260331T235959Z",
            "summary": "Repeats every month on the last Friday, until March 31, 2026",
        }

    def test_decode(self, client):
        r = client.post("/recurrence/decode", json={"rule": "FREQ=WEEKLY;INTERVAL=2;BYDAY=WE,MO"})
        body = r.json()
        assert body["frequency"] == "weekly"
        assert body["interval"] == 2
        assert body["daysOfWeek"] == [1, 3]

    def test_defaults(self, client):
        r = client.get("/recurrence/defaults",
                       params={"frequency": "yearly", "start": "2024-07-04T10:00:00Z"})
        body = r.json()
        assert (body["monthOfYear"], body["dayOfMonth"]) == (7, 4)


def test_layout(client, room, shared_room, book):
    book(shared_room["id"], "2024-05-06T09:00:00Z", "2024-05-06T10:00:00Z", title="A")
    book(shared_room["id"], "2024-05-06T09:30:00Z", "2024-05-06T10:30:00Z", title="B")
    book(shared_room["id"], "2024-05-06T10:15:00Z", "2024-05-06T11:00:00Z", title="C")
    book(room["id"], "2024-05-07T09:00:00Z", "2024-05-07T10:00:00Z", title="Tomorrow")

    r = client.get("/layout", params={"day": "2024-05-06", "startHour": 8, "pxPerMinute": 1.5})
    assert r.status_code == 200
    laid = {p["title"]: p for p in r.json()}
    assert set(laid) == {"A", "B", "C"}
    assert laid["B"]["totalColumns"] == 2
    assert laid["A"]["column"] == laid["C"]["column"] == 0
    assert laid["A"]["width"] == 50
    assert laid["A"]["top"] == 90


def test_suggest_next_free(client, room, book):
    book(room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z")
    book(room["id"], "2024-01-01T10:00:00Z", "2024-01-01T10:30:00Z")
    r = client.get("/suggest", params={"roomId": room["id"],
                                       "start": "2024-01-01T09:15:00Z", "end": "2024-01-01T10:15:00Z"})
    body = r.json()
    assert isoparse(body["suggestedStart"]) == isoparse("2024-01-01T10:30:00Z")
    assert isoparse(body["suggestedEnd"]) == isoparse("2024-01-01T11:30:00Z")


def test_ics_export(client, room, book):
    book(room["id"], "2024-01-01T09:00:00Z", "2024-01-01T10:00:00Z",
         title="Board, annual", recurrence=weekly_mondays(2))
    r = client.get("/export/ics", params={"start": "2024-01-01T00:00:00Z", "end": "2024-02-01T00:00:00Z"})
    assert r.headers["content-type"].startswith("text/calendar")
    assert r.text.count("BEGIN:VEVENT") == 2
    assert "DTSTART:20240108T090000Z" in r.text
    assert "SUMMARY:Board\\, annual" in r.text
    assert "RELATED-TO:orgcal-" in r.text
