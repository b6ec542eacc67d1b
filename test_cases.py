"""
Case submission, queue views and the pending -> active -> resolved/rejected lifecycle
"""
import pytest

from supportdesk.models import CaseStatus, Case
from supportdesk.services import CaseService, CaseTransitionError


# ===== service =====

def test_accept_sets_agent_and_activates(session, make_user, make_case):
    agent = make_user("agent")
    case = session.get(Case, make_case(make_user()).id)

    case = CaseService(session).accept(case, agent)
    assert case.status == CaseStatus.ACTIVE.value
    assert case.assigned_agent_id == agent.id


def test_accept_only_pending(session, make_user, make_case):
    service = CaseService(session)
    case = session.get(Case, make_case(make_user()).id)
    service.accept(case, make_user("agent"))

    with pytest.raises(CaseTransitionError):
        service.accept(case, make_user("agent"))


def test_resolve_sets_resolved_at(session, make_user, make_case):
    service = CaseService(session)
    case = session.get(Case, make_case(make_user()).id)
    service.accept(case, make_user("agent"))

    case = service.update_status(case, CaseStatus.RESOLVED.value)
    assert case.status == CaseStatus.RESOLVED.value
    assert case.resolved_at is not None


def test_closed_cases_cannot_move(session, make_user, make_case):
    service = CaseService(session)
    case = session.get(Case, make_case(make_user()).id)
    service.reject(case)

    with pytest.raises(CaseTransitionError):
        service.update_status(case, CaseStatus.ACTIVE.value)
    with pytest.raises(CaseTransitionError):
        service.reject(case)
    with pytest.raises(CaseTransitionError):
        service.assign(case, make_user("agent"))


def test_pending_cannot_jump_to_resolved(session, make_user, make_case):
    case = session.get(Case, make_case(make_user()).id)
    with pytest.raises(CaseTransitionError):
        CaseService(session).update_status(case, CaseStatus.RESOLVED.value)


def test_same_status_needs_force(session, make_user, make_case):
    service = CaseService(session)
    case = session.get(Case, make_case(make_user()).id)
    service.accept(case, make_user("agent"))

    with pytest.raises(CaseTransitionError):
        service.update_status(case, CaseStatus.ACTIVE.value)
    assert service.update_status(case, CaseStatus.ACTIVE.value, force=True).status == CaseStatus.ACTIVE.value


def test_forced_status_back_to_pending_unassigns(session, make_user, make_case):
    service = CaseService(session)
    case = session.get(Case, make_case(make_user()).id)
    service.accept(case, make_user("agent"))
    service.update_status(case, CaseStatus.RESOLVED.value)

    case = service.update_status(case, CaseStatus.PENDING.value, force=True)
    assert case.status == CaseStatus.PENDING.value
    assert case.assigned_agent_id is None


def test_unassign_agent_requeues_active_cases(session, make_user, make_case):
    service = CaseService(session)
    agent = make_user("agent")
    customer = make_user()
    active = session.get(Case, make_case(customer).id)
    resolved = session.get(Case, make_case(customer).id)
    service.accept(active, agent)
    service.accept(resolved, agent)
    service.update_status(resolved, CaseStatus.RESOLVED.value)

    assert service.unassign_agent(agent.id) == 1
    session.refresh(active)
    session.refresh(resolved)
    assert active.status == CaseStatus.PENDING.value and active.assigned_agent_id is None
    assert resolved.assigned_agent_id == agent.id


# ===== API =====

def test_create_case(client, make_user, headers):
    customer = make_user(fullname="Jane Doe")
    response = client.post("/api/cases", headers=headers(customer), json={
        "issue": "  Someone broke into my car  ",
        "department": "burglary",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    case = body["case"]
    assert case["status"] == "pending"
    assert case["issue"] == "Someone broke into my car"
    assert case["location"] == "Online"
    assert case["customer_name"] == "Jane Doe"
    assert case["assigned_agent_id"] is None
    assert case["customer"]["id"] == customer.id


def test_create_case_legacy_path(client, make_user, headers):
    response = client.post("/cases", headers=headers(make_user()), json={"issue": "Lost wallet", "department": "theft"})
    assert response.status_code == 201


def test_create_case_invalid_department(client, make_user, headers):
    response = client.post("/api/cases", headers=headers(make_user()), json={"issue": "Help", "department": "billing"})
    assert response.status_code == 422


def test_create_case_blank_issue(client, make_user, headers):
    response = client.post("/api/cases", headers=headers(make_user()), json={"issue": "   ", "department": "theft"})
    assert response.status_code == 422


def test_only_customers_create_cases(client, make_user, headers):
    response = client.post("/api/cases", headers=headers(make_user("agent")), json={"issue": "x", "department": "theft"})
    assert response.status_code == 403


def test_list_cases_filters(client, make_user, make_case, headers):
    customer = make_user()
    make_case(customer, department="theft")
    make_case(customer, department="robbery")

    response = client.get("/api/cases", params={"department": "theft"}, headers=headers(make_user("admin")))
    assert response.status_code == 200
    assert [c["department"] for c in response.json()["cases"]] == ["theft"]

    assert client.get("/api/cases", headers=headers(customer)).status_code == 403


def test_my_cases_and_latest(client, make_user, make_case, headers):
    customer = make_user()
    make_case(customer, issue="first")
    latest = make_case(customer, issue="second")
    make_case(make_user(), issue="someone else")

    response = client.get("/api/cases/my", headers=headers(customer))
    assert {c["issue"] for c in response.json()["cases"]} == {"first", "second"}

    response = client.get("/api/cases/latest", headers=headers(customer))
    assert response.json()["case"]["id"] == latest.id


def test_latest_without_cases(client, make_user, headers):
    assert client.get("/api/cases/latest", headers=headers(make_user())).status_code == 404


def test_pending_queue(client, make_user, make_case, headers):
    customer = make_user()
    agent = make_user("agent")
    waiting = make_case(customer)
    taken = make_case(customer)
    client.put(f"/api/cases/accept/{taken.id}", headers=headers(agent))

    response = client.get("/api/cases/pending", headers=headers(agent))
    assert [c["id"] for c in response.json()["cases"]] == [waiting.id]


def test_get_case_access(client, make_user, make_case, headers):
    owner = make_user()
    case = make_case(owner)

    assert client.get(f"/api/cases/{case.id}", headers=headers(owner)).status_code == 200
    assert client.get(f"/api/cases/{case.id}", headers=headers(make_user())).status_code == 403
    # agents can look at cases waiting in the queue
    assert client.get(f"/api/cases/{case.id}", headers=headers(make_user("agent"))).status_code == 200
    assert client.get("/api/cases/9999", headers=headers(owner)).status_code == 404


def test_accept_case(client, make_user, make_case, headers):
    customer = make_user()
    agent = make_user("agent", fullname="Agent Smith")
    case = make_case(customer)

    response = client.put(f"/api/cases/accept/{case.id}", headers=headers(agent))
    assert response.status_code == 200
    body = response.json()["case"]
    assert body["status"] == "active"
    assert body["assigned_agent"]["fullname"] == "Agent Smith"

    # second accept is a lifecycle conflict
    response = client.put(f"/api/cases/accept/{case.id}", headers=headers(make_user("agent")))
    assert response.status_code == 409

    notifications = client.get("/api/notifications", headers=headers(customer)).json()["notifications"]
    assert notifications[0]["type"] == "agent_assigned"
    assert "Agent Smith" in notifications[0]["message"]


def test_customer_cannot_accept(client, make_user, make_case, headers):
    customer = make_user()
    case = make_case(customer)
    assert client.put(f"/api/cases/accept/{case.id}", headers=headers(customer)).status_code == 403


def test_reject_case(client, make_user, make_case, headers):
    customer = make_user()
    case = make_case(customer)
    agent = make_user("agent")

    response = client.put(f"/api/cases/reject/{case.id}", headers=headers(agent))
    assert response.status_code == 200
    assert response.json()["case"]["status"] == "rejected"

    assert client.put(f"/api/cases/reject/{case.id}", headers=headers(agent)).status_code == 409


def test_reject_case_of_other_agent(client, make_user, make_case, headers):
    case = make_case(make_user())
    owner = make_user("agent")
    client.put(f"/api/cases/accept/{case.id}", headers=headers(owner))

    assert client.put(f"/api/cases/reject/{case.id}", headers=headers(make_user("agent"))).status_code == 403


def test_assign_case(client, make_user, make_case, headers):
    customer = make_user()
    agent = make_user("agent")
    case = make_case(customer)

    response = client.put("/api/cases/assign", headers=headers(make_user("supervisor")), json={
        "case_id": case.id, "agent_id": agent.id,
    })
    assert response.status_code == 200
    assert response.json()["case"]["status"] == "active"
    assert response.json()["case"]["assigned_agent_id"] == agent.id

    types = [n["type"] for n in client.get("/api/notifications", headers=headers(agent)).json()["notifications"]]
    assert types == ["case_assigned"]


def test_assign_unknown_agent(client, make_user, make_case, headers):
    case = make_case(make_user())
    response = client.put("/api/cases/assign", headers=headers(make_user("admin")), json={
        "case_id": case.id, "agent_id": make_user().id,
    })
    assert response.status_code == 404


def test_agent_resolves_own_case(client, make_user, make_case, headers):
    customer = make_user()
    agent = make_user("agent")
    case = make_case(customer)
    client.put(f"/api/cases/accept/{case.id}", headers=headers(agent))

    response = client.put(f"/api/cases/status/{case.id}", headers=headers(agent), json={"status": "resolved"})
    assert response.status_code == 200
    assert response.json()["case"]["resolved_at"] is not None

    response = client.put(f"/api/cases/status/{case.id}", headers=headers(agent), json={"status": "active"})
    assert response.status_code == 409

    types = [n["type"] for n in client.get("/api/notifications", headers=headers(customer)).json()["notifications"]]
    assert "case_resolved" in types


def test_repeating_current_status_is_a_conflict(client, make_user, make_case, headers):
    agent = make_user("agent")
    case = make_case(make_user())
    client.put(f"/api/cases/accept/{case.id}", headers=headers(agent))

    response = client.put(f"/api/cases/status/{case.id}", headers=headers(agent), json={"status": "active"})
    assert response.status_code == 409

    assert client.put(f"/api/cases/status/{case.id}", headers=headers(agent), json={"status": "resolved"}).status_code == 200
    response = client.put(f"/api/cases/status/{case.id}", headers=headers(agent), json={"status": "resolved"})
    assert response.status_code == 409


def test_status_update_by_other_agent(client, make_user, make_case, headers):
    case = make_case(make_user())
    client.put(f"/api/cases/accept/{case.id}", headers=headers(make_user("agent")))

    response = client.put(f"/api/cases/status/{case.id}", headers=headers(make_user("agent")), json={"status": "resolved"})
    assert response.status_code == 403


def test_admin_can_force_status(client, make_user, make_case, headers):
    case = make_case(make_user())
    response = client.put(f"/api/cases/status/{case.id}", headers=headers(make_user("admin")), json={"status": "resolved"})
    assert response.status_code == 200
    assert response.json()["case"]["status"] == "resolved"


def test_invalid_status_value(client, make_user, make_case, headers):
    case = make_case(make_user())
    response = client.put(f"/api/cases/status/{case.id}", headers=headers(make_user("admin")), json={"status": "closed"})
    assert response.status_code == 422


def test_cases_by_agent(client, make_user, make_case, headers):
    agent = make_user("agent")
    case = make_case(make_user())
    make_case(make_user())
    client.put(f"/api/cases/accept/{case.id}", headers=headers(agent))

    response = client.get(f"/api/cases/agent/{agent.id}", headers=headers(make_user("admin")))
    assert [c["id"] for c in response.json()["cases"]] == [case.id]


def test_departments(client):
    body = client.get("/api/departments").json()
    assert "cyber_crime" in body["caseDepartments"]
    assert "general_support" in body["agentDepartments"]


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
