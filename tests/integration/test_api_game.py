import pytest


ARRAY_SUM_SOLUTION = "def array_sum(numbers):\n    return sum(numbers)"


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["name"] == "CodeQuest Arena"


@pytest.mark.asyncio
async def test_metrics(client):
    await client.get("/api/game/state")
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "http_requests_total" in response.text


@pytest.mark.asyncio
async def test_initial_state(client):
    response = await client.get("/api/game/state")
    assert response.status_code == 200
    data = response.json()
    assert data["mode"] == "idle"
    assert data["grid_size"] == 15
    assert data["snake"] == [{"x": 7, "y": 7}]
    assert data["score"] == 0
    assert data["countdown"] is None
    types = [cell["type"] for cell in data["cells"]]
    assert types.count("food") == 1
    assert types.count("challenge") == 3
    assert types.count("bug") == 3


@pytest.mark.asyncio
async def test_toggle_starts_and_pauses(client):
    response = await client.post("/api/game/toggle")
    assert response.json()["mode"] == "countdown"
    assert response.json()["countdown"] == 3

    response = await client.post("/api/game/toggle")
    assert response.json()["mode"] == "idle"
    assert response.json()["countdown"] is None


@pytest.mark.asyncio
async def test_direction(client, engine):
    response = await client.post("/api/game/direction", json={"direction": "UP"})
    assert response.status_code == 200
    assert engine.state.next_direction.value == "UP"


@pytest.mark.asyncio
async def test_invalid_direction(client):
    response = await client.post("/api/game/direction", json={"direction": "SIDEWAYS"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_run_without_challenge(client):
    response = await client.post("/api/game/run", json={"code": ARRAY_SUM_SOLUTION})
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_run_solves_challenge(client, engine, activate_challenge):
    activate_challenge(engine, 0)

    state = (await client.get("/api/game/state")).json()
    assert state["mode"] == "challenge_active"
    assert state["active_challenge"]["id"] == "array-sum"
    assert "solution" not in state["active_challenge"]

    response = await client.post("/api/game/run", json={"code": ARRAY_SUM_SOLUTION})
    assert response.status_code == 200
    data = response.json()
    assert data["passed"] is True
    assert len(data["results"]) == 5
    assert data["results"][0]["type"] == "success"
    assert data["state"]["mode"] == "running"
    assert data["state"]["score"] == 100
    assert data["state"]["solved"] == ["array-sum"]


@pytest.mark.asyncio
async def test_run_reports_failures(client, engine, activate_challenge):
    activate_challenge(engine, 1)
    template = engine.state.active_challenge.template

    response = await client.post("/api/game/run", json={"code": template})
    data = response.json()
    assert data["passed"] is False
    assert data["results"][0]["message"] == "Function not implemented"
    assert data["results"][0]["error_kind"] == "user_code_unimplemented"
    assert data["state"]["mode"] == "challenge_active"


@pytest.mark.asyncio
async def test_skip_and_hint(client, engine, activate_challenge):
    activate_challenge(engine, 2)

    response = await client.post("/api/game/hint")
    assert response.status_code == 200
    assert response.json()["hint"] == engine.state.active_challenge.hints[0]
    assert response.json()["hints_revealed"] == 1

    response = await client.post("/api/game/skip")
    assert response.status_code == 200
    assert response.json()["mode"] == "running"
    assert len([c for c in response.json()["cells"] if c["type"] == "challenge"]) == 3

    response = await client.post("/api/game/skip")
    assert response.status_code == 409
    response = await client.post("/api/game/hint")
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_reset(client, engine, activate_challenge):
    activate_challenge(engine, 0)
    response = await client.post("/api/game/reset")
    assert response.status_code == 200
    assert response.json()["mode"] == "idle"
    assert response.json()["snake"] == [{"x": 7, "y": 7}]


@pytest.mark.asyncio
async def test_player_progress(client, engine, activate_challenge):
    response = await client.put("/api/game/player", json={"user_id": "ada"})
    assert response.status_code == 200
    assert response.json() == {"user_id": "ada", "high_score": 0, "completed_challenge_ids": []}

    activate_challenge(engine, 0)
    await client.post("/api/game/run", json={"code": ARRAY_SUM_SOLUTION})

    response = await client.put("/api/game/player", json={"user_id": "ada"})
    assert response.json()["completed_challenge_ids"] == ["array-sum"]

    response = await client.delete("/api/game/player")
    assert response.json()["user_id"] is None
    assert (await client.get("/api/game/state")).json()["user_id"] is None


@pytest.mark.asyncio
async def test_list_challenges(client):
    response = await client.get("/api/challenges/")
    assert response.status_code == 200
    data = response.json()
    assert [c["id"] for c in data] == ["array-sum", "find-bug", "list-comprehension"]
    assert all("solution" not in c for c in data)


@pytest.mark.asyncio
async def test_get_challenge(client):
    response = await client.get("/api/challenges/find-bug")
    assert response.status_code == 200
    data = response.json()
    assert data["function_name"] == "count_down"
    assert data["solved"] is False


@pytest.mark.asyncio
async def test_get_unknown_challenge(client):
    response = await client.get("/api/challenges/missing")
    assert response.status_code == 404
