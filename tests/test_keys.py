import pytest

from capgate.utils.keys import (
    AuthorityContext,
    KeyPair,
    base58_decode,
    base58_encode,
    public_key_from_did,
)


def test_base58_keeps_leading_zero_bytes():
    data = b"\x00\x00\x01\x02\xff"
    encoded = base58_encode(data)
    assert encoded.startswith("11")
    assert base58_decode(encoded) == data


def test_base58_rejects_invalid_character():
    with pytest.raises(ValueError):
        base58_decode("0OIl")


def test_did_format():
    did = KeyPair.generate().did()
    assert did.startswith("did:key:z")
    # p256-pub multicodec + compressed point
    assert len(base58_decode(did[len("did:key:z"):])) == 2 + 33


def test_from_secret_is_deterministic():
    assert KeyPair.from_secret("s3cret").did() == KeyPair.from_secret("s3cret").did()
    assert KeyPair.from_secret("s3cret").did() != KeyPair.from_secret("other").did()


def test_public_key_round_trips_through_did():
    pair = KeyPair.generate()
    recovered = public_key_from_did(pair.did())
    assert recovered.public_numbers() == pair.public_key.public_numbers()


@pytest.mark.parametrize("did", ["", "did:web:example.com", "did:key:z6Mkabc", "not-a-did"])
def test_public_key_from_did_rejects_unsupported(did):
    with pytest.raises(ValueError):
        public_key_from_did(did)


def test_authority_context_root_issuer():
    authority = AuthorityContext.from_secret("root-secret")
    assert authority.root_issuer == KeyPair.from_secret("root-secret").did()
    assert authority.keypair.did() == authority.root_issuer
