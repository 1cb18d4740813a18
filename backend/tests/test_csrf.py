"""Tests for the double-submit CSRF guard"""
import pytest
from starlette.requests import Request

from app.config import settings
from app.utils import csrf
from app.utils.errors import CsrfInvalidError


def _request(method: str, cookie_token=None, header_token=None) -> Request:
    headers = []
    if cookie_token is not None:
        headers.append((b"cookie", f"{settings.CSRF_COOKIE_NAME}={cookie_token}".encode()))
    if header_token is not None:
        headers.append((settings.CSRF_HEADER_NAME.lower().encode(), header_token.encode()))
    return Request({
        "type": "http",
        "method": method,
        "scheme": "http",
        "server": ("testserver", 80),
        "path": "/admin/announcements",
        "query_string": b"",
        "headers": headers,
    })


def test_token_is_bound_to_session():
    token = csrf.build_csrf_token("ses_a", "nonce-a")
    assert csrf.token_matches_session(token, "ses_a", "nonce-a")
    assert not csrf.token_matches_session(token, "ses_b", "nonce-a")
    assert not csrf.token_matches_session(token, "ses_a", "nonce-b")
    assert not csrf.token_matches_session("garbage", "ses_a", "nonce-a")


def test_safe_methods_are_exempt():
    csrf.validate_request(_request("GET"), "ses_a", "nonce-a")
    csrf.validate_request(_request("HEAD"), "ses_a", "nonce-a")


@pytest.mark.parametrize(
    "cookie, header, reason",
    [
        (None, "x", "cookie_missing"),
        ("x", None, "header_missing"),
        ("x", "y", "mismatch"),
    ],
)
def test_validate_request_rejects(cookie, header, reason):
    with pytest.raises(CsrfInvalidError) as exc_info:
        csrf.validate_request(_request("POST", cookie, header), "ses_a", "nonce-a")
    assert exc_info.value.reason == reason
    assert exc_info.value.status_code == 403


def test_token_from_another_session_is_rejected():
    foreign = csrf.build_csrf_token("ses_b", "nonce-b")
    with pytest.raises(CsrfInvalidError) as exc_info:
        csrf.validate_request(_request("DELETE", foreign, foreign), "ses_a", "nonce-a")
    assert exc_info.value.reason == "session_mismatch"


def test_valid_token_passes():
    token = csrf.build_csrf_token("ses_a", "nonce-a")
    csrf.validate_request(_request("PUT", token, token), "ses_a", "nonce-a")


def test_post_without_header_is_rejected(make_user, login):
    admin = make_user("admin")
    session_client = login(admin)
    session_client.headers.pop(settings.CSRF_HEADER_NAME)

    response = session_client.post("/admin/sessions/terminate-others")
    assert response.status_code == 403
    body = response.json()
    assert body["error"] == "csrf_invalid"
    assert body["reason"] == "header_missing"


def test_post_with_wrong_header_is_rejected(make_user, login):
    admin = make_user("admin")
    session_client = login(admin)
    session_client.headers[settings.CSRF_HEADER_NAME] = "forged.1700000000.deadbeef"

    response = session_client.post("/auth/logout")
    assert response.status_code == 403
    assert response.json()["reason"] == "mismatch"


def test_get_needs_no_csrf_header(make_user, login):
    admin = make_user("admin")
    session_client = login(admin)
    session_client.headers.pop(settings.CSRF_HEADER_NAME)

    response = session_client.get("/admin/sessions")
    assert response.status_code == 200


def test_csrf_checked_before_step_up(make_user, login):
    """A forged request never reaches the Policy Gate"""
    admin = make_user("admin")
    session_client = login(admin)
    session_client.headers.pop(settings.CSRF_HEADER_NAME)

    response = session_client.post("/admin/announcements", json={"title": "x", "status": "published"})
    assert response.json()["error"] == "csrf_invalid"
