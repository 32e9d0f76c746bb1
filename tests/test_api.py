"""HTTP tests against the FastAPI app with in-memory storage."""

from fastapi.testclient import TestClient

from atlas import calendar_utils as cal
from atlas.main import create_app
from atlas.memory_store import InMemoryStorage


def create_habit(client, **body):
    body.setdefault("name", "Read")
    response = client.post("/api/habits", json=body)
    assert response.status_code == 200, response.text
    return response.json()


def test_health(client):
    data = client.get("/api/health").json()
    assert data["status"] == "healthy"
    assert data["storage"] == "InMemoryStorage"
    assert data["timezone"] == "America/New_York"
    assert data["today"] == cal.today()


def test_create_habit_canonicalizes_schedule(client):
    habit = create_habit(client, schedule="5, 1,3,3")
    assert habit["schedule"] == "1,3,5"
    assert habit["streak"] == 0
    assert habit["created_at"] == cal.today()


def test_create_habit_defaults_to_every_day(client):
    assert create_habit(client)["schedule"] == "0,1,2,3,4,5,6"


def test_invalid_schedule_is_rejected(client):
    for schedule in ["", "1,8", "mon", "\u0663"]:
        response = client.post("/api/habits", json={"name": "Read", "schedule": schedule})
        assert response.status_code == 422
    assert client.get("/api/habits").json() == []


def test_complete_is_idempotent(client):
    habit = create_habit(client)
    first = client.post(f"/api/habits/{habit['id']}/complete").json()
    second = client.post(f"/api/habits/{habit['id']}/complete").json()
    assert first["created"] is True
    assert second["created"] is False

    [listed] = client.get("/api/habits").json()
    assert listed["completed_today"] is True
    assert listed["streak"] == 1

    history = client.get(f"/api/habits/{habit['id']}/history", params={"days": 3}).json()
    assert [d["completed"] for d in history] == [False, False, True]


def test_uncomplete_past_date(client):
    habit = create_habit(client)
    yesterday = cal.date_offset(1)
    client.post(f"/api/habits/{habit['id']}/complete", params={"date": yesterday})
    response = client.delete(f"/api/habits/{habit['id']}/complete", params={"date": yesterday})
    assert response.json()["removed"] is True


def test_complete_with_bad_date_is_400(client):
    habit = create_habit(client)
    response = client.post(f"/api/habits/{habit['id']}/complete", params={"date": "June 1"})
    assert response.status_code == 400
    assert "YYYY-MM-DD" in response.json()["detail"]


def test_missing_habit_is_404(client):
    assert client.post("/api/habits/999/complete").status_code == 404
    assert client.delete("/api/habits/999").status_code == 404
    assert client.patch("/api/habits/999", json={"name": "x"}).status_code == 404


def test_update_and_delete_habit(client):
    habit = create_habit(client)
    updated = client.patch(f"/api/habits/{habit['id']}", json={"schedule": "0,6", "icon": "📖"})
    assert updated.json()["schedule"] == "0,6"
    assert updated.json()["icon"] == "📖"
    assert client.delete(f"/api/habits/{habit['id']}").json() == {"ok": True}
    assert client.get("/api/habits").json() == []


def test_calendar(client):
    habit = create_habit(client)
    client.post(f"/api/habits/{habit['id']}/complete")
    days = client.get("/api/habits/calendar", params={"days": 7}).json()
    assert len(days) == 7
    assert days[-1] == {"date": cal.today(), "completed": 1, "total": 1, "pct": 100}
    assert len(client.get("/api/habits/calendar").json()) == 28


def test_workout_flow_marks_records(client):
    old = client.post("/api/sessions", json={"date": cal.date_offset(7)}).json()
    client.post(f"/api/sessions/{old['id']}/sets",
                json={"exercise_name": "Deadlift", "sets": [{"reps": 5, "weight_kg": 100}]})

    new = client.post("/api/sessions", json={"notes": "pull day"}).json()
    assert new["date"] == cal.today()
    result = client.post(f"/api/sessions/{new['id']}/sets", json={
        "exercise_name": "Deadlift",
        "muscle_group": "back",
        "sets": [{"reps": 5, "weight_kg": 100}, {"reps": 5, "weight_kg": 100.5},
                 {"reps": 6, "weight_kg": 50}],
    }).json()
    assert [s["is_pr"] for s in result["sets"]] == [False, True, True]

    sessions = client.get("/api/sessions").json()
    assert [s["id"] for s in sessions] == [new["id"], old["id"]]
    assert sessions[0]["pr_count"] == 2

    exercise_id = result["exercise_id"]
    progress = client.get(f"/api/exercises/{exercise_id}/progress").json()
    assert [p["max_weight"] for p in progress] == [100, 100.5]

    set_id = result["sets"][0]["id"]
    client.delete(f"/api/sessions/{new['id']}/sets/{set_id}")
    session = client.get(f"/api/sessions/{new['id']}").json()
    assert [s["set_number"] for s in session["exercises"][0]["sets"]] == [1, 2]


def test_sets_validation(client):
    session = client.post("/api/sessions", json={}).json()
    empty = client.post(f"/api/sessions/{session['id']}/sets",
                        json={"exercise_name": "Row", "sets": []})
    negative = client.post(f"/api/sessions/{session['id']}/sets",
                           json={"exercise_name": "Row", "sets": [{"reps": -1, "weight_kg": 10}]})
    assert empty.status_code == 422
    assert negative.status_code == 422
    assert client.post("/api/sessions/999/sets", json={
        "exercise_name": "Row", "sets": [{"reps": 5, "weight_kg": 10}]
    }).status_code == 404


def test_exercises_get_or_create(client):
    a = client.post("/api/exercises", json={"name": "Squat"}).json()
    b = client.post("/api/exercises", json={"name": "Squat", "muscle_group": "legs"}).json()
    assert a["id"] == b["id"]
    assert len(client.get("/api/exercises").json()) == 1


def test_goal_flow(client):
    goal = client.post("/api/goals", json={"title": "Marathon", "target_date": "2024-10-01"}).json()
    assert goal["progress"] == 0
    m1 = client.post(f"/api/goals/{goal['id']}/milestones", json={"title": "Half"}).json()
    client.post(f"/api/goals/{goal['id']}/milestones", json={"title": "30k"})

    toggled = client.patch(f"/api/goals/{goal['id']}/milestones/{m1['id']}").json()
    assert toggled["completed_at"] is not None
    assert toggled["goal_progress"] == 50

    updated = client.patch(f"/api/goals/{goal['id']}", json={"status": "completed"}).json()
    assert updated["status"] == "completed"
    assert client.get("/api/goals", params={"status": "active"}).json() == []

    assert client.delete(f"/api/goals/{goal['id']}/milestones/{m1['id']}").status_code == 200
    assert client.delete(f"/api/goals/{goal['id']}").status_code == 200
    assert client.delete(f"/api/goals/{goal['id']}").status_code == 404


def test_goal_validation(client):
    assert client.post("/api/goals", json={"title": "x", "target_date": "soon"}).status_code == 422
    assert client.patch("/api/goals/1", json={"status": "paused"}).status_code == 422


def test_nutrition(client):
    empty = client.get("/api/nutrition", params={"date": "2024-06-12"}).json()
    assert empty == {"date": "2024-06-12", "calories": 0, "protein_g": 0,
                     "carbs_g": 0, "fat_g": 0, "notes": None}

    client.put("/api/nutrition/2024-06-12", json={"calories": 2200, "protein_g": 150})
    saved = client.get("/api/nutrition", params={"date": "2024-06-12"}).json()
    assert saved["calories"] == 2200
    assert saved["carbs_g"] == 0

    assert client.put("/api/nutrition/06-12-2024", json={}).status_code == 400
    assert len(client.get("/api/nutrition/week").json()) == 7


def test_dashboard_and_recap(client):
    habit = create_habit(client)
    client.post(f"/api/habits/{habit['id']}/complete")

    dash = client.get("/api/dashboard").json()
    assert dash["today"] == cal.today()
    assert dash["habits_done_today"] == 1
    assert dash["last_workout"] is None

    recap = client.get("/api/recap").json()
    assert recap["this_week"]["date_range"]["end"] == cal.today()
    assert recap["top_streak"]["name"] == "Read"
    assert client.get("/api/recap", params={"anchor": "sunday"}).status_code == 200
    assert client.get("/api/recap", params={"anchor": "monday"}).status_code == 400


def test_achievements(client):
    empty = client.get("/api/achievements").json()
    assert empty["total"] == 15
    assert empty["unlocked"] == 0

    habit = create_habit(client)
    client.post(f"/api/habits/{habit['id']}/complete")
    data = client.get("/api/achievements").json()
    first = next(a for a in data["achievements"] if a["id"] == "first_step")
    assert first["unlocked"] is True

    # Unlocks survive removing the completion that earned them
    client.delete(f"/api/habits/{habit['id']}/complete")
    again = client.get("/api/achievements").json()
    kept = next(a for a in again["achievements"] if a["id"] == "first_step")
    assert kept["unlocked"] is True
    assert kept["unlocked_at"] == first["unlocked_at"]


def test_unexpected_error_is_logged_and_500(caplog):
    class BrokenStorage(InMemoryStorage):
        async def list_habits(self):
            raise ValueError("corrupt row")

    with TestClient(create_app(BrokenStorage()), raise_server_exceptions=False) as broken:
        response = broken.get("/api/habits")
    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}
    assert "corrupt row" in caplog.text


def test_patch_null_clears_optional_fields(client):
    habit = create_habit(client, why="stay sharp")
    cleared = client.patch(f"/api/habits/{habit['id']}", json={"why": None}).json()
    assert cleared["why"] is None
    assert cleared["name"] == "Read"

    blank = create_habit(client, name="Walk", why="air")
    assert client.patch(f"/api/habits/{blank['id']}", json={"why": "  "}).json()["why"] is None

    goal = client.post("/api/goals", json={"title": "Marathon", "description": "fall race",
                                           "target_date": "2024-10-01"}).json()
    updated = client.patch(f"/api/goals/{goal['id']}",
                           json={"description": None, "target_date": None}).json()
    assert updated["description"] is None
    assert updated["target_date"] is None
    assert updated["title"] == "Marathon"


def test_patch_null_keeps_required_fields(client):
    habit = create_habit(client, schedule="1,3")
    kept = client.patch(f"/api/habits/{habit['id']}", json={"name": None, "schedule": None}).json()
    assert kept["name"] == "Read"
    assert kept["schedule"] == "1,3"
