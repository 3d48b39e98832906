from __future__ import annotations

import json
from typing import Iterable, Protocol

from ..schemas.artifacts import ProcessedArtifact


def artifact_signature(artifacts: Iterable[ProcessedArtifact]) -> str:
    """Stable signature of an artifact set built from sorted ``name:size`` entries."""
    entries = sorted(f"{artifact.name}:{artifact.size}" for artifact in artifacts)
    return json.dumps(entries)


class SignatureStore(Protocol):
    def get(self) -> str | None: ...

    def set(self, value: str) -> None: ...


class InMemorySignatureStore:
    def __init__(self, initial: str | None = None) -> None:
        self._value = initial

    def get(self) -> str | None:
        return self._value

    def set(self, value: str) -> None:
        self._value = value
