import os
from urllib.parse import parse_qs, urlsplit

import httpx
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from starlette.middleware.sessions import SessionMiddleware

from fastapi_bluejeans import (
    AuthorizationRequestState,
    BlueJeansAuthenticationOptions,
    challenge,
    get_signed_in_identity,
    use_bluejeans_authentication,
)


# Stand-in for api.bluejeans.com so the example runs offline
def fake_bluejeans(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/oauth2/token":
        return httpx.Response(
            200,
            json={
                "access_token": "example-token",
                "expires_in": 3600,
                "scope": {"bearerPermissions": "user_info", "user": 7},
            },
        )
    return httpx.Response(200, json={"username": "carol", "emailId": "carol@example.com"})


options = BlueJeansAuthenticationOptions(
    client_id=os.environ.get("BLUEJEANS_CLIENT_ID", "example-client"),
    client_secret=os.environ.get("BLUEJEANS_CLIENT_SECRET", "example-secret"),
    app_name="Example App",
    backchannel_transport=httpx.MockTransport(fake_bluejeans),
)

app = FastAPI()
use_bluejeans_authentication(app, options, secret_key="example-state-secret")
# Added last so that it wraps the BlueJeans middleware and sees its sign-in
app.add_middleware(SessionMiddleware, secret_key="example-session-secret")


@app.get("/login")
def login(request: Request):
    return challenge(request, AuthorizationRequestState(redirect_uri="/profile"))


@app.get("/profile")
def profile(request: Request):
    identity = get_signed_in_identity(request)
    if identity is None:
        return {"signed_in": False}
    return {"signed_in": True, "name": identity.name}


client = TestClient(app, base_url="http://testserver", follow_redirects=False)


def test_login_redirects_to_bluejeans():
    response = client.get("/login")
    assert response.status_code == 302, response.text
    assert response.headers["location"].startswith("https://bluejeans.com/oauth2/authorize/")


def test_full_login():
    response = client.get("/login")
    query = parse_qs(urlsplit(response.headers["location"]).query)
    assert query["appName"] == ["Example App"]

    response = client.get(
        "/signin-bluejeans", params={"code": "example-code", "state": query["state"][0]}
    )
    assert response.status_code == 302, response.text
    assert response.headers["location"] == "/profile"

    response = client.get("/profile")
    assert response.json() == {"signed_in": True, "name": "carol"}


# python -m pytest examples/bluejeans_login_one.py
