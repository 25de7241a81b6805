import re
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

import auth
import errors
import tokens
from conftest import PASSWORD, create_user, login
from main import app
from models import User, utcnow


def _link_token(outbox):
    _, _, html = outbox[-1]
    return re.search(r"token=([\w-]+)", html).group(1)


def test_login_sets_session(client, db):
    create_user(db, "a@x.com", name="Aki")
    res = login(client, "A@X.com")
    assert res.json()["user"]["name"] == "Aki"

    session = client.get("/auth/session").json()
    assert session["authenticated"] is True
    assert session["needsOnboarding"] is False


def test_wrong_password_and_unknown_email_look_the_same(client, db):
    create_user(db, "a@x.com")
    wrong = client.post("/login", json={"email": "a@x.com", "password": "nope-nope"})
    unknown = client.post("/login", json={"email": "who@x.com", "password": "nope-nope"})
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json()


def test_passwordless_account_cannot_use_password_login(db):
    create_user(db, "magic@x.com", name=None, password=None)
    with pytest.raises(errors.InvalidCredentials):
        auth.authenticate_password(db, "magic@x.com", "anything")


def test_logout_clears_session(client, db):
    create_user(db, "a@x.com")
    login(client, "a@x.com")
    client.post("/logout")
    assert client.get("/auth/session").json()["authenticated"] is False


def test_magic_link_creates_account_and_hits_onboarding_gate(client, db, outbox):
    assert client.post("/auth/magic-link", json={"email": "new@x.com"}).status_code == 200
    assert outbox[-1][0] == "new@x.com"
    token = _link_token(outbox)

    res = client.get("/auth/magic-link/callback", params={"token": token}, follow_redirects=False)
    assert res.status_code == 302
    assert res.headers["location"] == "/onboarding"

    session = client.get("/auth/session").json()
    assert session["authenticated"] is True
    assert session["needsOnboarding"] is True

    blocked = client.get("/user/profile")
    assert blocked.status_code == 200  # reading your own profile is allowed
    blocked = client.post("/courses/1/wants-to-eat")
    assert blocked.status_code == 403
    assert blocked.json()["error"] == "OnboardingRequired"


def test_magic_link_is_single_use(client, db, outbox):
    create_user(db, "a@x.com")
    client.post("/auth/magic-link", json={"email": "a@x.com"})
    token = _link_token(outbox)
    first = client.get("/auth/magic-link/callback", params={"token": token}, follow_redirects=False)
    assert first.headers["location"] == "/"
    again = client.get("/auth/magic-link/callback", params={"token": token}, follow_redirects=False)
    assert again.status_code == 400


def test_onboarding_forces_reauthentication(client, db, outbox):
    client.post("/auth/magic-link", json={"email": "new@x.com"})
    client.get("/auth/magic-link/callback", params={"token": _link_token(outbox)}, follow_redirects=False)
    old_cookie = client.cookies.get("orefull_session")

    res = client.post("/user/setup", json={"name": "Nao", "password": "new-password-1"})
    assert res.status_code == 200
    assert res.json()["reauthenticate"] is True
    assert client.get("/auth/session").json()["authenticated"] is False

    # a copy of the pre-onboarding cookie is no longer accepted
    with TestClient(app, cookies={"orefull_session": old_cookie}) as stale:
        assert stale.get("/auth/session").json()["authenticated"] is False

    login(client, "new@x.com", "new-password-1")
    assert client.get("/auth/session").json()["needsOnboarding"] is False


def test_forgot_password_answers_the_same_for_unknown_email(client, db, outbox):
    create_user(db, "a@x.com")
    known = client.post("/auth/forgot-password", json={"email": "a@x.com"})
    unknown = client.post("/auth/forgot-password", json={"email": "ghost@x.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert [to for to, _, _ in outbox] == ["a@x.com"]


def test_reset_token_is_single_use(client, db, outbox):
    create_user(db, "a@x.com")
    client.post("/auth/forgot-password", json={"email": "a@x.com"})
    token = _link_token(outbox)

    first = client.post("/auth/reset-password", json={"token": token, "password": "brand-new-pw"})
    second = client.post("/auth/reset-password", json={"token": token, "password": "other-new-pw"})
    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["error"] == "InvalidToken"

    login(client, "a@x.com", "brand-new-pw")


def test_new_reset_request_supersedes_old_token(db):
    create_user(db, "a@x.com")
    old = tokens.issue(db, tokens.PASSWORD_RESET, "a@x.com")
    tokens.issue(db, tokens.PASSWORD_RESET, "a@x.com")
    db.commit()
    with pytest.raises(errors.InvalidToken):
        auth.reset_password(db, old, "whatever-123")


def test_expired_reset_token_is_rejected(db):
    create_user(db, "a@x.com")
    token = tokens.issue(db, tokens.PASSWORD_RESET, "a@x.com", now=utcnow() - timedelta(hours=25))
    db.commit()
    with pytest.raises(errors.TokenExpired):
        auth.reset_password(db, token, "whatever-123")
    user = db.query(User).filter_by(email="a@x.com").one()
    assert auth.verify_password(PASSWORD, user.hashed_password)


def test_password_reset_invalidates_existing_sessions(client, db, outbox):
    create_user(db, "a@x.com")
    login(client, "a@x.com")
    client.post("/auth/forgot-password", json={"email": "a@x.com"})
    client.post("/auth/reset-password", json={"token": _link_token(outbox), "password": "brand-new-pw"})
    assert client.get("/auth/session").json()["authenticated"] is False
