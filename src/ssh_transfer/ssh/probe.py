"""Capability probing for transport collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from .errors import CapabilityError
from .transport import Transport


@dataclass
class TransportCapabilities:
    name: str
    available: bool
    missing: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.available and not self.missing

    def to_payload(self) -> dict:
        return {
            "name": self.name,
            "available": self.available,
            "missing": list(self.missing),
        }


class TransportProbe:
    """Checks a transport offers every primitive the client calls."""

    def collect(self, transport: object) -> TransportCapabilities:
        missing = [
            name
            for name in Transport.REQUIRED_CAPABILITIES
            if not callable(getattr(transport, name, None))
        ]
        is_available = getattr(transport, "is_available", None)
        available = bool(is_available()) if callable(is_available) else False
        return TransportCapabilities(
            name=type(transport).__name__,
            available=available,
            missing=missing,
        )

    def require(self, transport: object) -> TransportCapabilities:
        capabilities = self.collect(transport)
        if not capabilities.available:
            raise CapabilityError(f"Transport {capabilities.name} reports itself unavailable")
        if capabilities.missing:
            raise CapabilityError(
                f"Transport {capabilities.name} is missing: {', '.join(capabilities.missing)}"
            )
        return capabilities
