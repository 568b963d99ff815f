# tests/test_run_fetch.py

import json
from pathlib import Path

import pytest
import requests

from conftest import fail, make_response, respond
from fetch_pipeline import run_fetch
from fetch_pipeline.fetcher import Fetcher
from fetch_pipeline.models import FetchedData, Resource, ResourceStatus
from fetch_pipeline.session import AuthSession
from fetch_pipeline.writer import summarize_result, write_results_jsonl

LOGIN_URL = "https://site.example/login"
LOGOUT_URL = "https://site.example/logout"
LOGIN_ARGS = [
    "--login-url", LOGIN_URL,
    "--username", "alice",
    "--password", "s3cr3t!",
    "--logout-url", LOGOUT_URL,
]


def use_fake_http(monkeypatch, http):
    """Route both the fetcher and the login session through the fake HTTP session."""
    monkeypatch.setattr(
        run_fetch,
        "Fetcher",
        lambda config, auth: Fetcher(config=config, auth=auth, session=http),
    )
    monkeypatch.setattr(
        run_fetch,
        "AuthSession",
        lambda timeout: AuthSession(session_factory=lambda: http, timeout=timeout),
    )


def test_parse_header():
    assert run_fetch.parse_header("Accept-Language: de-DE") == ("Accept-Language", "de-DE")
    assert run_fetch.parse_header("X-Empty:") == ("X-Empty", "")


def test_url_is_required():
    with pytest.raises(SystemExit):
        run_fetch.parse_args([])


def test_login_requires_credentials(monkeypatch):
    monkeypatch.delenv(run_fetch.PASSWORD_ENV_VAR, raising=False)
    with pytest.raises(SystemExit):
        run_fetch.parse_args(["--url", "https://a.example/", "--login-url", "https://a.example/login"])


def test_bad_header_is_rejected():
    with pytest.raises(SystemExit):
        run_fetch.parse_args(["--url", "https://a.example/", "--header", "no-colon"])


def test_profile_with_overrides():
    args = run_fetch.parse_args([
        "--url", "https://a.example/",
        "--profile", "quick",
        "--header", "X-Token: abc",
        "--read-timeout-ms", "750",
    ])

    config = run_fetch.build_fetcher_config(args)

    assert config.connect_timeout_ms == 2000
    assert config.read_timeout_ms == 750
    assert config.content_limit == 2 * 1024 * 1024
    assert config.headers["X-Token"] == "abc"
    assert config.headers["Accept-Language"] == "en-US,en;q=0.5"
    # Profile dict itself is untouched
    assert "X-Token" not in run_fetch.FETCH_PROFILES["quick"]["headers"]


def test_defaults_without_profile():
    config = run_fetch.build_fetcher_config(run_fetch.parse_args(["--url", "https://a.example/"]))
    assert config.timeout == (5.0, 10.0)
    assert config.user_agents_file is None


def test_resources_from_urls_and_file(tmp_path: Path):
    url_file = tmp_path / "seeds.txt"
    url_file.write_text("# seeds\nhttps://b.example/\n\nhttps://b.example/\n", encoding="utf-8")
    args = run_fetch.parse_args(["--url", "https://a.example/", "--url-file", str(url_file)])

    urls = [r.url for r in run_fetch.iter_resources(args)]

    assert urls == ["https://a.example/", "https://b.example/", "https://b.example/"]


def test_writer_summaries(tmp_path: Path):
    ok = FetchedData(b"abc", "text/plain", 200, {}, Resource("https://a.example/", ResourceStatus.FETCHED))
    out = tmp_path / "nested" / "results.jsonl"

    assert write_results_jsonl([ok], out) == 1

    record = json.loads(out.read_text(encoding="utf-8"))
    assert record == summarize_result(ok)
    assert record == {
        "url": "https://a.example/",
        "resource_status": "FETCHED",
        "status_code": 200,
        "content_type": "text/plain",
        "bytes": 3,
        "truncated": False,
    }


def test_main_writes_one_line_per_url(http, monkeypatch, tmp_path: Path):
    http.routes[("GET", "https://a.example/")] = respond(200, b"hello", {"Content-Type": "text/html"})
    http.routes[("GET", "https://b.example/")] = fail(requests.exceptions.ConnectionError("down"))

    monkeypatch.setattr(
        run_fetch,
        "Fetcher",
        lambda config, auth: Fetcher(config=config, auth=auth, session=http),
    )
    out = tmp_path / "results.jsonl"

    code = run_fetch.main([
        "--url", "https://a.example/",
        "--url", "https://b.example/",
        "--output", str(out),
        "--log-level", "WARNING",
    ])

    assert code == 0
    lines = [json.loads(line) for line in out.read_text(encoding="utf-8").splitlines()]
    assert [(l["url"], l["status_code"], l["resource_status"]) for l in lines] == [
        ("https://a.example/", 200, "FETCHED"),
        ("https://b.example/", 400, "ERROR"),
    ]


def test_main_reports_unreadable_user_agent_file(tmp_path: Path):
    bad = tmp_path / "agents.txt"
    bad.write_bytes(b"\xff\xfe\xfa")

    code = run_fetch.main(["--url", "https://a.example/", "--user-agents-file", str(bad)])

    assert code == 2


def test_print_results_numbers_each_summary(capsys):
    ok = FetchedData(
        b"abc", "text/plain", 200, {"X-Content-Truncated": ["true"]},
        Resource("https://a.example/", ResourceStatus.FETCHED),
    )
    bad = FetchedData(b"", "", 400, {}, Resource("https://b.example/", ResourceStatus.ERROR))

    assert run_fetch.print_results([ok, bad]) == 2

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith("[1] 200 FETCHED")
    assert "3 bytes (truncated)" in lines[0]
    assert lines[0].endswith("https://a.example/")
    assert lines[1].startswith("[2] 400 ERROR")
    assert "(truncated)" not in lines[1]


def test_main_logs_in_fetches_with_cookie_and_logs_out(http, monkeypatch, capsys):
    def accept_login(session, kwargs):
        session.cookies.set("SESSIONID", "xyz", domain="site.example", path="/")
        return make_response(200, b"welcome")

    http.routes[("GET", LOGIN_URL)] = respond(
        200, b'<form><input type="text" name="user"><input type="password" name="pass"></form>'
    )
    http.routes[("POST", LOGIN_URL)] = accept_login
    http.routes[("GET", "https://site.example/account")] = respond(200, b"private")
    http.routes[("GET", "https://site.example/broken")] = fail(requests.exceptions.ReadTimeout("slow"))
    http.routes[("GET", LOGOUT_URL)] = respond(302, headers={"Location": "/"})
    use_fake_http(monkeypatch, http)

    code = run_fetch.main([
        "--url", "https://site.example/account",
        "--url", "https://site.example/broken",
        "--log-level", "WARNING",
        *LOGIN_ARGS,
    ])

    assert code == 0
    calls = [(method, url) for method, url, _ in http.requests]
    assert calls == [
        ("GET", LOGIN_URL),
        ("POST", LOGIN_URL),
        ("GET", "https://site.example/account"),
        ("GET", "https://site.example/broken"),
        ("GET", LOGOUT_URL),
    ]
    assert http.requests[1][2]["data"] == b"user=alice&pass=s3cr3t%21"
    assert http.requests[2][2]["headers"]["Cookie"] == "SESSIONID=xyz"
    assert http.requests[3][2]["headers"]["Cookie"] == "SESSIONID=xyz"
    assert http.requests[4][2]["headers"]["Cookie"] == "SESSIONID=xyz"
    assert http.requests[4][2]["allow_redirects"] is False

    out = capsys.readouterr().out.splitlines()
    assert out[0].startswith("[1] 200 FETCHED") and out[0].endswith("https://site.example/account")
    assert out[1].startswith("[2] 400 ERROR") and out[1].endswith("https://site.example/broken")


def test_main_logs_out_when_output_fails(http, monkeypatch):
    def accept_login(session, kwargs):
        session.cookies.set("SESSIONID", "xyz", domain="site.example", path="/")
        return make_response(200, b"welcome")

    def broken_printer(results):
        raise RuntimeError("stdout closed")

    http.routes[("GET", LOGIN_URL)] = respond(
        200, b'<form><input type="text" name="user"><input type="password" name="pass"></form>'
    )
    http.routes[("POST", LOGIN_URL)] = accept_login
    http.routes[("GET", LOGOUT_URL)] = respond(200)
    use_fake_http(monkeypatch, http)
    monkeypatch.setattr(run_fetch, "print_results", broken_printer)

    with pytest.raises(RuntimeError):
        run_fetch.main(["--url", "https://site.example/account", *LOGIN_ARGS])

    assert http.requests[-1][:2] == ("GET", LOGOUT_URL)


def test_main_continues_anonymously_without_login_form(http, monkeypatch, capsys):
    http.routes[("GET", LOGIN_URL)] = respond(200, b"<html><body>Maintenance</body></html>")
    http.routes[("GET", "https://site.example/public")] = respond(200, b"public")
    use_fake_http(monkeypatch, http)

    code = run_fetch.main(["--url", "https://site.example/public", "--log-level", "WARNING", *LOGIN_ARGS])

    assert code == 0
    calls = [(method, url) for method, url, _ in http.requests]
    # No credentials posted, and nothing to log out from
    assert calls == [("GET", LOGIN_URL), ("GET", "https://site.example/public")]
    assert "Cookie" not in http.requests[1][2]["headers"]
    assert capsys.readouterr().out.startswith("[1] 200 FETCHED")
