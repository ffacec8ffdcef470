from vayam.extensions import db
from vayam.models import Participant, Vote
from vayam.models.user import ROLE_COMPANY_ADMIN


def _setup(client, make_user, make_question, login):
    owner = make_user("owner@example.com", role=ROLE_COMPANY_ADMIN)
    sme = make_user("sme@example.com")
    qid = make_question(owner, allowed_emails=["sme@example.com"])
    login(sme)
    sol = client.post(f"/api/questions/{qid}/solutions", json={"title": "Idea", "content": "Plant trees."})
    return owner, sme, qid, sol.get_json()["data"]["id"]


def test_add_pro_and_con(client, make_user, make_question, login):
    _, _, qid, sid = _setup(client, make_user, make_question, login)
    pro = client.post(f"/api/solutions/{sid}/pros", json={"content": "Shade in summer"})
    con = client.post(f"/api/solutions/{sid}/cons", json={"content": "Upkeep costs"})
    assert pro.status_code == 201
    assert con.status_code == 201
    assert pro.get_json()["data"]["content"] == "Shade in summer"

    detail = client.get(f"/api/questions/{qid}").get_json()["data"]
    solution = detail["solutions"][0]
    assert [p["content"] for p in solution["pros"]] == ["Shade in summer"]
    assert [c["content"] for c in solution["cons"]] == ["Upkeep costs"]


def test_point_validation_and_lookup(client, make_user, make_question, login):
    _, _, _, sid = _setup(client, make_user, make_question, login)
    assert client.post(f"/api/solutions/{sid}/pros", json={"content": ""}).status_code == 400
    assert client.post(f"/api/solutions/{sid}/pros", json={"content": "x" * 1001}).status_code == 400
    assert client.post("/api/solutions/999999/pros", json={"content": "ok"}).status_code == 404
    assert client.post("/api/solutions/nope/cons", json={"content": "ok"}).status_code == 400


def test_point_requires_question_access(client, make_user, make_question, login):
    _, _, _, sid = _setup(client, make_user, make_question, login)
    login(make_user("stranger@example.com"))
    assert client.post(f"/api/solutions/{sid}/pros", json={"content": "hi"}).status_code == 403


def test_vote_upsert_and_totals(app, client, make_user, make_question, login):
    owner, _, qid, sid = _setup(client, make_user, make_question, login)

    resp = client.post("/api/vote", json={"type": "solution", "id": sid, "vote": 1})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["voteCount"] == 1

    # Changing the vote replaces it instead of adding a second row
    resp = client.post("/api/vote", json={"type": "solution", "id": sid, "vote": -1})
    assert resp.get_json()["data"]["voteCount"] == -1

    login(owner)
    resp = client.post("/api/vote", json={"type": "solution", "id": sid, "vote": -1})
    assert resp.get_json()["data"]["voteCount"] == -2

    resp = client.get(f"/api/votes/{sid}?type=solution")
    assert resp.get_json()["data"]["voteCount"] == -2

    detail = client.get(f"/api/questions/{qid}").get_json()["data"]
    assert detail["solutions"][0]["userVote"] == -1
    assert detail["solutions"][0]["voteCount"] == -2

    with app.app_context():
        assert Vote.query.filter_by(solution_id=sid).count() == 2
        # Owner's first vote made them a participant
        assert Participant.query.filter_by(question_id=qid).count() == 2


def test_vote_on_pro_tallies(client, make_user, make_question, login):
    _, _, qid, sid = _setup(client, make_user, make_question, login)
    pid = client.post(f"/api/solutions/{sid}/pros", json={"content": "Cheap"}).get_json()["data"]["id"]
    client.post("/api/vote", json={"type": "pro", "id": pid, "vote": 1})

    pro = client.get(f"/api/questions/{qid}").get_json()["data"]["solutions"][0]["pros"][0]
    assert pro["upvotes"] == 1
    assert pro["downvotes"] == 0
    assert pro["userVote"] == 1


def test_vote_input_validation(client, make_user, make_question, login):
    _, _, _, sid = _setup(client, make_user, make_question, login)
    resp = client.post("/api/vote", json={"type": "question", "id": sid, "vote": 2})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["success"] is False
    assert len(body["errors"]) == 2

    assert client.post("/api/vote", json={"type": "solution", "id": sid, "vote": True}).status_code == 400
    assert client.post("/api/vote", json={"type": "con", "id": 424242, "vote": 1}).status_code == 404
    assert client.get(f"/api/votes/{sid}").status_code == 400


def test_vote_requires_view_access(client, make_user, make_question, login):
    _, _, _, sid = _setup(client, make_user, make_question, login)
    login(make_user("stranger@example.com"))
    assert client.post("/api/vote", json={"type": "solution", "id": sid, "vote": 1}).status_code == 403
