import pytest

from capgate.models import (
    ANY_AUTH,
    NO_THROW,
    Ability,
    Capabilities,
    Capability,
    LoginPass,
    UcanAuthOptions,
    as_requirement,
)
from capgate.utils.capabilities import model_capabilities


def test_model_pair_specs_use_configured_resource(authority, notes_config):
    reqs = model_capabilities([("notes", "read"), ("notes", ["read", "own"])], authority, notes_config)

    assert [r.capability.to_dict() for r in reqs] == [
        {"with": "svc:notes", "can": "notes/read"},
        {"with": "svc:notes", "can": "notes/read/own"},
    ]
    assert {r.root_issuer for r in reqs} == {authority.root_issuer}


def test_model_passes_explicit_specs_through(authority, notes_config):
    reqs = model_capabilities(
        [{"with": "app:inbox", "can": "mail/send"}, {"can": {"namespace": "notes", "segments": "write"}}],
        authority,
        notes_config,
    )
    assert [str(r.capability) for r in reqs] == ["app:inbox -> mail/send", "svc:notes -> notes/write"]


@pytest.mark.parametrize("specs", [None, "*", "$", ANY_AUTH, NO_THROW])
def test_model_non_list_yields_nothing(authority, notes_config, specs):
    assert model_capabilities(specs, authority, notes_config) == []


def test_model_malformed_spec_propagates(authority, notes_config):
    with pytest.raises(ValueError):
        model_capabilities([{"with": "svc:notes"}], authority, notes_config)


def test_widened_requirement_is_a_new_value(authority, notes_config):
    (req,) = model_capabilities([("notes", "read")], authority, notes_config)
    wide = req.widened()

    assert str(wide.capability.can) == "notes/*"
    assert str(req.capability.can) == "notes/read"
    assert wide.root_issuer == req.root_issuer
    assert wide.widened() == wide


def test_ability_rules():
    read, wildcard, superuser = Ability.parse("notes/read"), Ability.parse("notes/*"), Ability.parse("*")

    assert read.satisfies(Ability.parse("NOTES/read"))
    assert not wildcard.satisfies(read)
    assert wildcard.encompasses(read)
    assert not read.encompasses(wildcard)
    assert superuser.satisfies(read) and superuser.encompasses(wildcard)
    assert not wildcard.encompasses(superuser)


def test_capability_from_dict_rejects_garbage():
    with pytest.raises(ValueError):
        Capability.from_dict({"with": "no-scheme", "can": "notes/read"})
    with pytest.raises(ValueError):
        Capability.from_dict({"can": "notes/read"})


def test_as_requirement_markers():
    assert as_requirement("*") is ANY_AUTH
    assert as_requirement("$") is NO_THROW
    assert as_requirement(None) is None
    assert as_requirement([("notes", "read")]) == Capabilities(specs=(("notes", "read"),))
    with pytest.raises(ValueError):
        as_requirement("all")


def test_login_pass_shorthand():
    single = UcanAuthOptions(login_pass=([["createdBy.login"]], "*"))
    many = UcanAuthOptions(login_pass=[(["owner"], ["get", "patch/title"]), (["members.*.login"], "*")])

    assert single.login_pass == (LoginPass(paths=(["createdBy.login"],), methods="*"),)
    assert [r.methods for r in many.login_pass] == [("get", "patch/title"), "*"]
    assert UcanAuthOptions(or_methods="*").uses_or("find")
    assert not UcanAuthOptions(or_methods=["get"]).uses_or("find")


def test_login_pass_list_pair_is_a_single_rule():
    single = UcanAuthOptions(login_pass=[["createdBy.login"], "*"])
    two_paths = UcanAuthOptions(login_pass=[["owner", "createdBy.login"], ["patch/title"]])

    assert single.login_pass == (LoginPass(paths=("createdBy.login",), methods="*"),)
    assert two_paths.login_pass == (LoginPass(paths=("owner", "createdBy.login"), methods=("patch/title",)),)


def test_login_pass_rejects_bare_string_paths():
    with pytest.raises(ValueError):
        LoginPass.coerce(("createdBy.login", "*"))


def test_single_or_method_is_not_a_substring_match():
    options = UcanAuthOptions(or_methods="patch")

    assert options.or_methods == ("patch",)
    assert options.uses_or("patch")
    assert not options.uses_or("pat")
