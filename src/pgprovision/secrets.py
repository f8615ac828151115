from __future__ import annotations

import base64
import json
from contextlib import contextmanager
from typing import Any, Iterator, Optional

try:  # pragma: no cover
    import boto3  # type: ignore
except Exception:  # pragma: no cover
    boto3 = None


class SecretResolver:
    """Resolves secret references in variable mappings."""

    def __init__(self):
        self._cache: dict[tuple[str, Optional[str]], Any] = {}

    def resolve(self, values: dict[str, Any]) -> dict[str, Any]:
        return {k: self.resolve_value(v) for k, v in values.items()}

    def resolve_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            if "aws_secret" in value:
                return self._resolve_aws_secret(value)
            return {k: self.resolve_value(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self.resolve_value(v) for v in value]
        return value

    def _resolve_aws_secret(self, spec: dict[str, Any]) -> Any:
        if boto3 is None:
            raise RuntimeError("boto3 is required to resolve aws_secret references")
        name = str(spec["aws_secret"])
        key = spec.get("key")
        cache_key = (name, key if key is None else str(key))
        if cache_key in self._cache:
            return self._cache[cache_key]

        client = boto3.client("secretsmanager")
        response = client.get_secret_value(SecretId=name)
        secret_str = response.get("SecretString")
        if secret_str is None:
            binary = response.get("SecretBinary")
            if binary is None:
                raise RuntimeError(f"Secret {name} has no SecretString or SecretBinary")
            secret_str = base64.b64decode(binary).decode()

        value: Any = secret_str
        if key is not None:
            try:
                payload = json.loads(secret_str)
            except json.JSONDecodeError:
                # Plain-text secret; the key is only a hint.
                payload = None
            if isinstance(payload, dict):
                value = payload[str(key)]

        self._cache[cache_key] = value
        return value


class ScopedSecret:
    """A credential that can be revealed exactly once.

    The value is dropped when the ``with`` block exits, and ``repr``/``str``
    never show it, so it does not leak into logs or result details.
    """

    def __init__(self, value: str):
        self._value: Optional[str] = value

    @classmethod
    def from_reference(cls, reference: Any, resolver: Optional[SecretResolver] = None) -> "ScopedSecret":
        resolver = resolver or SecretResolver()
        value = resolver.resolve_value(reference)
        if value is None or isinstance(value, (dict, list)):
            raise ValueError("secret reference did not resolve to a string")
        return cls(str(value))

    @property
    def released(self) -> bool:
        return self._value is None

    @contextmanager
    def reveal(self) -> Iterator[str]:
        if self._value is None:
            raise RuntimeError("secret has already been used")
        try:
            yield self._value
        finally:
            self._value = None

    def __repr__(self) -> str:
        return "ScopedSecret(****)"

    __str__ = __repr__
