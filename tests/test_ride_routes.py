import uuid

from conftest import PICKUP, make_driver_ready, register, ride_request


def _create(client, passenger, **overrides):
    resp = client.post("/api/rides", json=ride_request(**overrides), headers=passenger["headers"])
    assert resp.status_code == 201, resp.text
    return resp.json()["ride"]


def test_create_ride_computes_fare_server_side(client, passenger):
    ride = _create(client, passenger)
    assert ride["status"] == "pending"
    assert ride["driver"] is None
    assert ride["passenger"]["id"] == passenger["user"]["id"]
    assert ride["fare"] == {
        "base_fare": 3.0,
        "distance_fare": 7.5,
        "time_fare": 0.13,
        "surge_fare": 0.0,
        "total": 10.63,
    }
    assert ride["pickup_location"]["address"] == PICKUP["address"]
    assert ride["payment_status"] == "pending"


def test_create_ride_validation(client, passenger, driver):
    resp = client.post("/api/rides", json=ride_request(vehicle_type="limousine"), headers=passenger["headers"])
    assert resp.status_code == 400
    assert resp.json()["success"] is False

    body = ride_request()
    body["pickup_location"] = {"address": "   ", "lat": 0, "lng": 0}
    assert client.post("/api/rides", json=body, headers=passenger["headers"]).status_code == 400

    body = ride_request()
    del body["dropoff_location"]
    assert client.post("/api/rides", json=body, headers=passenger["headers"]).status_code == 400

    resp = client.post("/api/rides", json=ride_request(), headers=driver["headers"])
    assert resp.status_code == 403
    assert resp.json() == {"success": False, "message": "Passenger role required."}


def test_full_lifecycle_over_http(client, passenger, driver):
    ride = _create(client, passenger)
    ride_id = ride["id"]

    pending = client.get("/api/rides/pending", headers=driver["headers"]).json()
    assert pending["count"] == 1 and pending["requests"][0]["id"] == ride_id

    resp = client.put(f"/api/rides/{ride_id}/accept", headers=driver["headers"])
    assert resp.status_code == 200
    accepted = resp.json()["ride"]
    assert accepted["status"] == "accepted"
    assert accepted["driver"]["id"] == driver["user"]["id"]
    assert accepted["driver"]["vehicle_plate"] == "RAC 123A"

    for status in ("arrived", "started", "completed"):
        resp = client.put(f"/api/rides/{ride_id}/status", json={"status": status}, headers=driver["headers"])
        assert resp.status_code == 200, resp.text
        assert resp.json()["ride"]["status"] == status

    done = client.get(f"/api/rides/{ride_id}", headers=passenger["headers"]).json()["ride"]
    assert done["payment_status"] == "completed"
    assert done["start_time"] and done["end_time"]

    resp = client.post(f"/api/rides/{ride_id}/rate", json={"rating": 4, "review": "Smooth"}, headers=passenger["headers"])
    assert resp.status_code == 200
    assert resp.json()["ride"]["rating"]["by_passenger"] == 4

    resp = client.post(f"/api/rides/{ride_id}/rate", json={"rating": 5}, headers=passenger["headers"])
    assert resp.status_code == 400
    assert resp.json()["message"] == "You have already rated this ride"

    events = client.get(f"/api/rides/{ride_id}/events", headers=driver["headers"]).json()["events"]
    types = [e["event_type"] for e in events]
    assert types[0] == "ride_created"
    assert types.count("status_changed") == 3
    assert "ride_rated" in types

    earnings = client.get("/api/drivers/earnings", headers=driver["headers"]).json()["earnings"]
    assert earnings == {"total": 10.63, "total_rides": 1, "rating": 4.0}


def test_accept_race_has_a_single_winner(client, passenger, driver):
    rival = make_driver_ready(client, register(client, "driver"))
    ride_id = _create(client, passenger)["id"]

    assert client.put(f"/api/rides/{ride_id}/accept", headers=driver["headers"]).status_code == 200
    resp = client.put(f"/api/rides/{ride_id}/accept", headers=rival["headers"])
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "message": "Ride is no longer available"}


def test_accept_unknown_ride(client, driver):
    resp = client.put(f"/api/rides/{uuid.uuid4()}/accept", headers=driver["headers"])
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "message": "Ride not found"}


def test_status_updates_require_the_assigned_driver(client, passenger, driver):
    rival = make_driver_ready(client, register(client, "driver"))
    ride_id = _create(client, passenger)["id"]
    client.put(f"/api/rides/{ride_id}/accept", headers=driver["headers"])

    resp = client.put(f"/api/rides/{ride_id}/status", json={"status": "arrived"}, headers=rival["headers"])
    assert resp.status_code == 403
    resp = client.put(f"/api/rides/{ride_id}/status", json={"status": "arrived"}, headers=passenger["headers"])
    assert resp.status_code == 403
    resp = client.put(f"/api/rides/{ride_id}/status", json={"status": "started"}, headers=driver["headers"])
    assert resp.status_code == 400
    resp = client.put(f"/api/rides/{ride_id}/status", json={"status": "flying"}, headers=driver["headers"])
    assert resp.status_code == 400


def test_rides_are_private_to_their_parties(client, passenger, driver, admin):
    stranger = register(client)
    ride_id = _create(client, passenger)["id"]

    assert client.get(f"/api/rides/{ride_id}", headers=stranger["headers"]).status_code == 403
    assert client.get(f"/api/rides/{ride_id}/events", headers=stranger["headers"]).status_code == 403
    # a driver is not a party until accepting
    assert client.get(f"/api/rides/{ride_id}", headers=driver["headers"]).status_code == 403
    assert client.get(f"/api/rides/{ride_id}", headers=admin["headers"]).status_code == 200
    assert client.get(f"/api/rides/{uuid.uuid4()}", headers=passenger["headers"]).status_code == 404


def test_cancel(client, passenger, driver):
    ride_id = _create(client, passenger)["id"]
    client.put(f"/api/rides/{ride_id}/accept", headers=driver["headers"])

    resp = client.put(f"/api/rides/{ride_id}/cancel", json={"reason": "Traffic"}, headers=driver["headers"])
    assert resp.status_code == 200
    ride = resp.json()["ride"]
    assert ride["status"] == "cancelled"
    assert ride["cancelled_by"] == driver["user"]["id"]
    assert ride["cancellation_reason"] == "Traffic"

    resp = client.put(f"/api/rides/{ride_id}/cancel", headers=passenger["headers"])
    assert resp.status_code == 400
    assert resp.json()["message"] == "Cannot cancel this ride"

    me = client.get("/api/drivers/me", headers=driver["headers"]).json()["driver"]
    assert me["is_available"] is True


def test_rating_before_completion_is_rejected(client, passenger):
    ride_id = _create(client, passenger)["id"]
    resp = client.post(f"/api/rides/{ride_id}/rate", json={"rating": 5}, headers=passenger["headers"])
    assert resp.status_code == 400
    assert resp.json()["message"] == "Can only rate completed rides"

    resp = client.post(f"/api/rides/{ride_id}/rate", json={"rating": 9}, headers=passenger["headers"])
    assert resp.status_code == 400


def test_active_and_history(client, passenger, driver):
    assert client.get("/api/rides/active", headers=passenger["headers"]).json() == {"success": True, "ride": None}

    ride_id = _create(client, passenger)["id"]
    assert client.get("/api/rides/active", headers=passenger["headers"]).json()["ride"]["id"] == ride_id
    assert client.get("/api/rides/active", headers=driver["headers"]).json()["ride"] is None

    client.put(f"/api/rides/{ride_id}/accept", headers=driver["headers"])
    assert client.get("/api/rides/active", headers=driver["headers"]).json()["ride"]["id"] == ride_id

    history = client.get("/api/rides/history", headers=passenger["headers"]).json()
    assert history["count"] == 1 and history["rides"][0]["id"] == ride_id


def test_pending_is_for_drivers(client, passenger):
    resp = client.get("/api/rides/pending", headers=passenger["headers"])
    assert resp.status_code == 403
    assert resp.json()["message"] == "Driver role required."


def test_nearby_drivers(client, passenger, driver):
    resp = client.post(
        "/api/rides/nearby-drivers",
        json={"lat": PICKUP["lat"], "lng": PICKUP["lng"], "vehicle_type": "economy", "max_distance_m": 3000},
        headers=passenger["headers"],
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 1
    assert body["drivers"][0]["id"] == driver["user"]["id"]
    assert body["drivers"][0]["distance_km"] < 3

    resp = client.post(
        "/api/rides/nearby-drivers",
        json={"lat": PICKUP["lat"], "lng": PICKUP["lng"], "vehicle_type": "suv"},
        headers=passenger["headers"],
    )
    assert resp.json()["count"] == 0


def test_share_ride(client, passenger):
    ride_id = _create(client, passenger)["id"]
    client.post(
        "/api/auth/trusted-contacts",
        json={"name": "Brother", "phone": "+250788999000"},
        headers=passenger["headers"],
    )
    resp = client.post(f"/api/rides/{ride_id}/share", headers=passenger["headers"])
    assert resp.status_code == 200
    body = resp.json()
    assert ride_id in body["share_link"]
    assert body["trusted_contacts"] == 1
