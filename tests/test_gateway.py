"""Tests for the RunRest HTTP gateway.

Runs the full app through TestClient with a small, shared key ring.
"""

from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from runrest.app import create_app
from runrest.config import RunRestConfig
from runrest.errors import ConfigurationError
from runrest.server import RunRestServer


def add(args: list[int]) -> int:
    return args[0] + args[1]


def divide(args: list[float]) -> float:
    return args[0] / args[1]


async def greet(name: str) -> dict:
    return {"greeting": f"hello {name}"}


class Opaque:
    __slots__ = ()


def _make_server(keyring, api_key: str = "") -> RunRestServer:
    config = RunRestConfig(
        api_key=api_key,
        group_secrets={"BILLING": "s3cr3t", "ALPHA": "alpha-pass", "BETA": "beta-pass"},
    )
    server = RunRestServer(config, keyring=keyring)
    server.add_group("billing")
    server.define(add, "billing", name="sum")
    server.define(divide, "billing")
    server.add_group("alpha")
    server.add_group("beta")
    server.define(greet, "alpha")
    server.define(greet, "beta")
    return server


@pytest.fixture
def server(keyring):
    return _make_server(keyring)


@pytest.fixture
def client(server):
    return TestClient(create_app(server=server))


def _register(client, group="billing", password="s3cr3t"):
    r = client.post(f"/{group}/register", json={"password": password})
    assert r.status_code == 200
    return r.json()


def _execute(client, registration, fn, arg=None):
    return client.post(
        registration["executionRoute"],
        json={"id": registration["id"], "fn": fn, "arg": arg},
    )


class TestHealth:
    def test_health(self, client):
        r = client.get("/api/v1/health")
        assert r.status_code == 200
        assert r.json() == {"status": "ok", "service": "runrest"}

    def test_version(self, client):
        r = client.get("/api/v1/version")
        assert r.status_code == 200
        assert r.json() == {"gateway": "0.1.0", "keys": 3}

    def test_groups_listing_hides_execution_routes(self, client, server):
        r = client.get("/api/v1/groups")
        assert r.status_code == 200
        billing = next(g for g in r.json() if g["name"] == "billing")
        assert billing["registrationRoute"] == "/billing/register"
        assert billing["functions"] == ["divide", "sum"]
        assert server.registry.get("billing").execution_hash not in r.text


class TestRegistration:
    def test_register(self, client, server):
        data = _register(client)
        assert len(data["id"]) == 3
        assert data["executionRoute"] == server.registry.get("billing").execution_route

    def test_wrong_password(self, client):
        r = client.post("/billing/register", json={"password": "nope"})
        assert r.status_code == 401
        assert r.json() == {"error": "Invalid password"}

    def test_password_of_another_group(self, client):
        r = client.post("/billing/register", json={"password": "alpha-pass"})
        assert r.status_code == 401

    def test_missing_password(self, client):
        r = client.post("/billing/register", json={})
        assert r.status_code == 422

    def test_unknown_group(self, client):
        r = client.post("/orders/register", json={"password": "s3cr3t"})
        assert r.status_code == 404

    def test_group_name_case_insensitive(self, client):
        assert len(_register(client, group="BILLING")["id"]) == 3

    def test_repeated_registration_both_authorize(self, client):
        first = _register(client)
        second = _register(client)
        assert first["id"] != second["id"]
        assert first["executionRoute"] == second["executionRoute"]
        assert _execute(client, first, "sum", [1, 1]).json() == {"result": 2}
        assert _execute(client, second, "sum", [2, 2]).json() == {"result": 4}


class TestExecution:
    def test_scenario(self, client):
        registration = _register(client)
        r = _execute(client, registration, "sum", [2, 3])
        assert r.status_code == 200
        assert r.json() == {"result": 5}

        tampered = dict(registration, id=list(registration["id"]))
        tampered["id"][0] = tampered["id"][0][::-1]
        r = _execute(client, tampered, "sum", [2, 3])
        assert r.status_code == 401
        assert r.json() == {"error": "Invalid token"}

    def test_async_function(self, client):
        registration = _register(client, "alpha", "alpha-pass")
        r = _execute(client, registration, "greet", "ana")
        assert r.json() == {"result": {"greeting": "hello ana"}}

    def test_unknown_function(self, client):
        registration = _register(client)
        r = _execute(client, registration, "multiply", [2, 3])
        assert r.status_code == 404
        assert r.json() == {"error": 'Function "multiply" not found'}

    def test_unknown_function_needs_authorization_first(self, client):
        registration = _register(client)
        registration["id"] = ["bogus"] * 3
        r = _execute(client, registration, "multiply", [2, 3])
        assert r.status_code == 401

    def test_function_error(self, client):
        registration = _register(client)
        r = _execute(client, registration, "divide", [1, 0])
        assert r.status_code == 500
        assert r.json() == {"error": "float division by zero"}

    def test_invalid_argument(self, client):
        registration = _register(client)
        r = _execute(client, registration, "sum", "two")
        assert r.status_code == 422
        assert "sum" in r.json()["error"]

    def test_token_bound_to_group(self, client, server):
        alpha = _register(client, "alpha", "alpha-pass")
        beta_route = server.registry.get("beta").execution_route
        r = client.post(beta_route, json={"id": alpha["id"], "fn": "greet", "arg": "x"})
        assert r.status_code == 401
        assert r.json() == {"error": "Invalid token"}

    def test_wrong_execution_hash(self, client):
        registration = _register(client)
        r = client.post(
            "/billing/execute-0000",
            json={"id": registration["id"], "fn": "sum", "arg": [1, 2]},
        )
        assert r.status_code == 404

    def test_rotation_keeps_bundle_valid(self, client):
        registration = _register(client)
        for index in (1, 2, 0):
            r = client.put("/api/v1/active-key", json={"index": index})
            assert r.status_code == 200
            assert r.json() == {"index": index, "size": 3}
            assert _execute(client, registration, "sum", [index, 1]).json() == {"result": index + 1}

    def test_rotation_out_of_range(self, client):
        r = client.put("/api/v1/active-key", json={"index": 3})
        assert r.status_code == 400
        assert client.get("/api/v1/active-key").json() == {"index": 0, "size": 3}

    def test_short_bundle(self, client):
        registration = _register(client)
        registration["id"] = registration["id"][:1]
        assert _execute(client, registration, "sum", [1, 2]).status_code == 401

    @pytest.mark.parametrize(
        "bundle",
        [
            pytest.param(None, id="missing"),
            pytest.param("x", id="not-a-list"),
            pytest.param({"0": "x"}, id="object"),
        ],
    )
    def test_malformed_bundle_is_invalid_token(self, client, server, bundle):
        route = server.registry.get("billing").execution_route
        body = {"fn": "sum", "arg": [1, 2]}
        if bundle is not None:
            body["id"] = bundle
        r = client.post(route, json=body)
        assert r.status_code == 401
        assert r.json() == {"error": "Invalid token"}

    def test_non_string_token_is_invalid_token(self, client):
        registration = _register(client)
        registration["id"][0] = 12345
        r = _execute(client, registration, "sum", [1, 2])
        assert r.status_code == 401
        assert r.json() == {"error": "Invalid token"}

    def test_malformed_request_uses_error_envelope(self, client, server):
        route = server.registry.get("billing").execution_route
        r = client.post(route, json={"id": ["secret-looking-token"], "fn": 12345})
        assert r.status_code == 422
        assert set(r.json()) == {"error"}
        assert "fn" in r.json()["error"]
        assert "secret-looking-token" not in r.text

    def test_unencodable_result(self, client, server):
        server.define(lambda arg: Opaque(), "billing", name="opaque")
        registration = _register(client)
        r = _execute(client, registration, "opaque")
        assert r.status_code == 500
        assert r.headers["content-type"] == "application/json"
        assert r.json() == {"error": 'Function "opaque" returned a value that cannot be encoded as JSON'}

    def test_token_decrypted_off_the_event_loop(self, client, server, monkeypatch):
        loop_running = []
        verify = server.verifier.verify

        def recording_verify(bundle, group_name):
            try:
                asyncio.get_running_loop()
                loop_running.append(True)
            except RuntimeError:
                loop_running.append(False)
            return verify(bundle, group_name)

        monkeypatch.setattr(server.verifier, "verify", recording_verify)
        registration = _register(client)
        assert _execute(client, registration, "sum", [1, 2]).json() == {"result": 3}
        assert loop_running == [False]


class TestAuth:
    def test_no_key_required_in_dev_mode(self, client):
        r = client.get("/api/v1/health")
        assert r.status_code == 200

    def test_key_required_when_configured(self, keyring):
        c = TestClient(create_app(server=_make_server(keyring, api_key="secret-key-123")))

        r = c.get("/api/v1/health")
        assert r.status_code == 401

        r = c.put("/api/v1/active-key", json={"index": 1}, headers={"X-API-Key": "wrong"})
        assert r.status_code == 401

        r = c.get("/api/v1/health", headers={"X-API-Key": "secret-key-123"})
        assert r.status_code == 200

    def test_group_routes_ignore_api_key(self, keyring):
        c = TestClient(create_app(server=_make_server(keyring, api_key="secret-key-123")))
        assert len(_register(c)["id"]) == 3


class TestAppFactory:
    def test_setup_hook(self, keyring, monkeypatch):
        import sys
        import types

        module = types.ModuleType("runrest_test_setup")

        def setup(server):
            server.add_group("billing")
            server.define(add, "billing", name="sum")

        module.setup = setup
        monkeypatch.setitem(sys.modules, "runrest_test_setup", module)

        config = RunRestConfig(
            keys=keyring.dumps(),
            group_secrets={"BILLING": "s3cr3t"},
            setup="runrest_test_setup:setup",
        )
        c = TestClient(create_app(config))
        registration = _register(c)
        assert _execute(c, registration, "sum", [2, 3]).json() == {"result": 5}

    def test_bad_setup_hook(self, keyring):
        config = RunRestConfig(keys=keyring.dumps(), setup="no-colon")
        with pytest.raises(ConfigurationError):
            create_app(config)

    def test_active_index_out_of_range(self, keyring):
        with pytest.raises(ConfigurationError):
            RunRestServer(RunRestConfig(active_key_index=5), keyring=keyring)

    def test_function_decorator(self, server):
        @server.function("billing", name="negate")
        def negate(x: int) -> int:
            return -x

        assert negate(2) == -2
        c = TestClient(create_app(server=server))
        registration = _register(c)
        assert _execute(c, registration, "negate", 4).json() == {"result": -4}

    def test_audit_log_masks_execution_hash(self, client, caplog):
        registration = _register(client)
        with caplog.at_level("INFO", logger="runrest.audit"):
            _execute(client, registration, "sum", [1, 2])
        execution_hash = registration["executionRoute"].rsplit("-", 1)[1]
        assert "/billing/execute-***" in caplog.text
        assert execution_hash not in caplog.text
