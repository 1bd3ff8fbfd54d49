import pytest

from capgate.models import UcanAuthOptions
from capgate.utils.capabilities import model_capabilities
from capgate.utils.keys import KeyPair
from capgate.utils.verifier import verify_against_reqs
from tests.conftest import make_context, mint, new_login
from tests.supabase_stub import reset_tables


def _grant_record(subject: str, logins: list, ucan, *, key: str = "editors") -> dict:
    did = KeyPair.generate().did()
    return {"id": f"cap-{subject}", "subject": subject, "did": did, "caps": {key: {"logins": logins, "ucan": ucan}}}


def _with_token(record: dict, capabilities) -> dict:
    for grant in record["caps"].values():
        grant["ucan"] = mint(record["did"], capabilities).encoded
    return record


@pytest.mark.asyncio
async def test_listed_login_is_granted_through_stored_grant(authority, notes_config):
    login = new_login("login-7")
    own = mint(login["did"], [("svc:notes", "notes/read")])
    record = _with_token(_grant_record("team-1", ["login-7"], None), [("svc:notes", "notes/write")])
    reset_tables(caps=[record])

    context = make_context("patch", token=own, audience=login["did"], login=login, config=notes_config)
    reqs = model_capabilities([("notes", "write")], authority, notes_config)

    denied = await verify_against_reqs(reqs, context, UcanAuthOptions())
    granted = await verify_against_reqs(reqs, context, UcanAuthOptions(cap_subjects=["team-1"]))

    assert not denied.ok
    assert granted.ok


@pytest.mark.asyncio
async def test_unlisted_login_is_not_granted(authority, notes_config):
    login = new_login("login-7")
    record = _with_token(_grant_record("team-1", ["login-8"], None), [("svc:notes", "notes/write")])
    reset_tables(caps=[record])

    context = make_context("patch", login=login, config=notes_config)
    reqs = model_capabilities([("notes", "write")], authority, notes_config)
    result = await verify_against_reqs(reqs, context, UcanAuthOptions(cap_subjects=["team-1"]))

    assert not result.ok


@pytest.mark.asyncio
async def test_login_ids_compare_as_strings(authority, notes_config):
    login = new_login(7)
    record = _with_token(_grant_record("team-1", ["7"], None), [("svc:notes", "notes/write")])
    reset_tables(caps=[record])

    context = make_context("patch", login=login, config=notes_config)
    reqs = model_capabilities([("notes", "write")], authority, notes_config)
    assert (await verify_against_reqs(reqs, context, UcanAuthOptions(cap_subjects=["team-1"]))).ok


@pytest.mark.asyncio
async def test_broken_grant_entry_is_skipped(authority, notes_config):
    login = new_login("login-7")
    broken = _grant_record("team-1", ["login-7"], 12345)
    good = _with_token(_grant_record("team-2", ["login-7"], None), [("svc:notes", "notes/write")])
    reset_tables(caps=[broken, good])

    context = make_context("patch", login=login, config=notes_config)
    reqs = model_capabilities([("notes", "write")], authority, notes_config)
    result = await verify_against_reqs(reqs, context, UcanAuthOptions(cap_subjects=["team-1", "team-2"]))

    assert result.ok


@pytest.mark.asyncio
async def test_lookup_is_limited_to_requested_subjects(authority, notes_config):
    login = new_login("login-7")
    other = _with_token(_grant_record("team-9", ["login-7"], None), [("svc:notes", "notes/write")])
    reset_tables(caps=[other])

    context = make_context("patch", login=login, config=notes_config)
    reqs = model_capabilities([("notes", "write")], authority, notes_config)
    result = await verify_against_reqs(reqs, context, UcanAuthOptions(cap_subjects=["team-1"]))

    assert not result.ok
    assert result.err == ["No delegated capabilities for this login"]
