"""Test the /log, /delete-log and /last-log endpoints."""

from app.config import Settings, get_settings
from app.main import app


def event_row(date="2024-03-01", street="Maple Avenue", door="12", status="opened",
              timestamp="2024-03-01T09:00:00.000Z", interval="09:00", first_entry=False):
    return [
        date, "Friday", "", "", "", "Clear", "10", interval, street, door, status,
        timestamp, "usr_other", "TRUE" if first_entry else "FALSE",
    ]


class TestAddLog:
    def test_add_log(self, client, sheets, event_payload):
        response = client.post("/log", json=event_payload)

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Log added"
        assert body["aggregation"] == {"bucket": "ok", "position": "ok", "notHome": "skipped"}
        rows = sheets.data("Sheet1")
        assert len(rows) == 1
        assert rows[0][8:14] == [
            "Maple Avenue", "12", "opened", "2024-03-01T10:05:00.000Z", "usr_test000001", "FALSE",
        ]

    def test_missing_field_is_400(self, client, sheets, event_payload):
        del event_payload["streetName"]

        response = client.post("/log", json=event_payload)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Invalid request body"
        assert any(d["field"] == "streetName" for d in body["details"])
        assert sheets.calls == []

    def test_unknown_status_is_400(self, client, event_payload):
        event_payload["status"] = "maybe"
        assert client.post("/log", json=event_payload).status_code == 400

    def test_duplicate_any_status_is_409(self, client, sheets, event_payload):
        sheets.add_row("Sheet1", event_row(street="maple avenue", status="not-home"))

        response = client.post("/log", json=event_payload)

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "Duplicate visit"
        assert body["existingStatus"] == "not-home"
        assert sheets.ops("append") == []

    def test_duplicate_date_compared_after_parsing(self, client, sheets, event_payload):
        sheets.add_row("Sheet1", event_row(date="3/1/2024"))
        assert client.post("/log", json=event_payload).status_code == 409

    def test_other_day_is_not_duplicate(self, client, sheets, event_payload):
        sheets.add_row("Sheet1", event_row(date="2024-02-29", timestamp="2024-02-29T09:00:00.000Z"))
        assert client.post("/log", json=event_payload).status_code == 200

    def test_first_entry_row_is_not_a_duplicate(self, client, sheets, event_payload):
        sheets.add_row("Sheet1", event_row(first_entry=True))
        assert client.post("/log", json=event_payload).status_code == 200

    def test_first_entry_skips_duplicate_check_and_aggregates(self, client, sheets, event_payload):
        sheets.add_row("Sheet1", event_row())
        event_payload["isFirstEntry"] = True

        response = client.post("/log", json=event_payload)

        assert response.status_code == 200
        assert response.json()["aggregation"]["bucket"] == "skipped"
        assert sheets.data("Daily Stats") == []

    def test_replayed_timestamp_is_409(self, client, sheets, event_payload):
        event_payload["isFirstEntry"] = True
        assert client.post("/log", json=event_payload).status_code == 200
        assert client.post("/log", json=event_payload).status_code == 409
        assert len(sheets.data("Sheet1")) == 1

    def test_append_failure_is_500(self, client, sheets, event_payload):
        sheets.fail_on.add("append")

        response = client.post("/log", json=event_payload)

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to add log"}
        assert sheets.data("Daily Stats") == []

    def test_read_failure_is_500(self, client, sheets, event_payload):
        sheets.fail_on.add("read")
        assert client.post("/log", json=event_payload).status_code == 500

    def test_aggregate_failure_still_200(self, client, sheets, event_payload):
        sheets.add_row("Daily Stats", ["2024-03-01", "Friday", "10:00", "", "", "", "", "", "0", "0", "0"])
        sheets.fail_on.add("update")

        response = client.post("/log", json=event_payload)

        assert response.status_code == 200
        assert response.json()["aggregation"]["bucket"].startswith("failed:")

    def test_get_not_allowed(self, client):
        assert client.get("/log").status_code == 405


class TestDeleteLog:
    def test_delete_by_normalised_timestamp(self, client, sheets):
        sheets.add_row("Sheet1", event_row(timestamp="2024-03-01T09:00:00.000Z"))
        sheets.add_row("Daily Stats", ["2024-03-01", "Friday", "09:00", "", "", "", "", "", "0", "1", "0"])

        response = client.post("/delete-log", json={"timestampToDelete": "2024-03-01T09:00:00Z"})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Log deleted"
        assert body["matchedBy"] == "same_instant"
        assert body["aggregation"]["bucket"] == "ok"
        assert sheets.ops("clear") == ["Sheet1!A2:N2"]
        assert sheets.data("Sheet1") == [[""] * 14]
        assert sheets.data("Daily Stats")[0][8:11] == ["0", "0", "0"]

    def test_delete_first_entry_skips_revert(self, client, sheets):
        sheets.add_row("Sheet1", event_row(first_entry=True))

        response = client.post("/delete-log", json={"timestampToDelete": "2024-03-01T09:00:00.000Z"})

        assert response.status_code == 200
        assert response.json()["aggregation"]["bucket"] == "skipped"

    def test_delete_twice_is_404(self, client, sheets):
        sheets.add_row("Sheet1", event_row())
        payload = {"timestampToDelete": "2024-03-01T09:00:00.000Z"}

        assert client.post("/delete-log", json=payload).status_code == 200
        assert client.post("/delete-log", json=payload).status_code == 404

    def test_unknown_timestamp_is_404(self, client):
        response = client.post("/delete-log", json={"timestampToDelete": "2030-01-01T00:00:00Z"})
        assert response.status_code == 404
        assert response.json() == {"error": "Log not found"}

    def test_missing_field_is_400(self, client):
        assert client.post("/delete-log", json={}).status_code == 400

    def test_clear_failure_is_500(self, client, sheets):
        sheets.add_row("Sheet1", event_row())
        sheets.fail_on.add("clear")

        response = client.post("/delete-log", json={"timestampToDelete": "2024-03-01T09:00:00.000Z"})

        assert response.status_code == 500


class TestLastLog:
    def test_empty_table_is_404(self, client):
        response = client.get("/last-log", params={"user": "usr_a"})
        assert response.status_code == 404

    def test_user_row(self, client, sheets):
        sheets.add_row("User Positions", ["usr_a", "Elm Street", "4"])
        sheets.add_row("User Positions", ["usr_b", "Oak Road", "7"])

        response = client.get("/last-log", params={"user": "usr_a"})

        assert response.status_code == 200
        assert response.json()["lastLog"] == {
            "user": "usr_a", "streetName": "Elm Street", "doorNumber": "4", "isDefault": False,
        }

    def test_unknown_user_gets_default(self, client, sheets):
        sheets.add_row("User Positions", ["usr_a", "Elm Street", "4"])
        sheets.add_row("User Positions", ["usr_b", "Oak Road", "7"])

        body = client.get("/last-log", params={"user": "usr_z"}).json()

        assert body["lastLog"]["streetName"] == "Oak Road"
        assert body["lastLog"]["isDefault"] is True

    def test_no_user_param_gets_default(self, client, sheets):
        sheets.add_row("User Positions", ["usr_a", "Elm Street", "4"])
        assert client.get("/last-log").json()["lastLog"]["isDefault"] is True


class TestConfiguration:
    def test_missing_credentials_is_500(self, client, event_payload):
        from app.sheets import get_store

        app.dependency_overrides.pop(get_store)
        app.dependency_overrides[get_settings] = lambda: Settings(
            google_credentials=None, spreadsheet_id=None, _env_file=None
        )

        response = client.post("/log", json=event_payload)

        assert response.status_code == 500
        assert response.json() == {"error": "Server configuration error"}


class TestHealth:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "doorlog-backend"

    def test_health_reports_unconfigured(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "degraded", "store": "not configured"}
