import pytest

from pgprovision.secrets import ScopedSecret, SecretResolver


class FakeBoto3:
    def __init__(self, payload: str):
        self.payload = payload
        self.calls = 0

    def client(self, name):
        assert name == "secretsmanager"
        outer = self

        class FakeClient:
            def get_secret_value(self, SecretId):
                outer.calls += 1
                return {"SecretString": outer.payload}

        return FakeClient()


def test_secret_resolver_plaintext_with_key(monkeypatch):
    monkeypatch.setattr("pgprovision.secrets.boto3", FakeBoto3("mypassword"))

    values = SecretResolver().resolve({"password": {"aws_secret": "plain", "key": "password"}})
    assert values["password"] == "mypassword"


def test_secret_resolver_json_key_and_cache(monkeypatch):
    fake = FakeBoto3('{"password": "s3cr3t"}')
    monkeypatch.setattr("pgprovision.secrets.boto3", fake)
    resolver = SecretResolver()

    ref = {"aws_secret": "pgsql/admin", "key": "password"}
    assert resolver.resolve({"a": ref, "b": [ref]}) == {"a": "s3cr3t", "b": ["s3cr3t"]}
    assert fake.calls == 1


def test_secret_resolver_requires_boto3(monkeypatch):
    monkeypatch.setattr("pgprovision.secrets.boto3", None)
    with pytest.raises(RuntimeError):
        SecretResolver().resolve({"password": {"aws_secret": "x"}})


def test_scoped_secret_reveals_once():
    secret = ScopedSecret("hunter2")

    assert "hunter2" not in repr(secret)
    with secret.reveal() as value:
        assert value == "hunter2"
    assert secret.released
    with pytest.raises(RuntimeError):
        with secret.reveal():
            pass


def test_scoped_secret_rejects_non_string_reference():
    with pytest.raises(ValueError):
        ScopedSecret.from_reference({"nested": "value"})
