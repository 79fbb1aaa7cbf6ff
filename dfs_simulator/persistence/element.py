"""Attributed element tree used to export and restore simulator state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import InvalidPersistedState


@dataclass
class StateElement:
    """A named node with string attributes and ordered child elements."""

    name: str
    attributes: Dict[str, str] = field(default_factory=dict)
    elements: List["StateElement"] = field(default_factory=list)

    def add_attribute(self, name: str, value: Any) -> "StateElement":
        self.attributes[name] = str(value)
        return self

    def add_element(self, element: "StateElement") -> "StateElement":
        self.elements.append(element)
        return element

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attributes.get(name)

    def get_element(self, name: str) -> Optional["StateElement"]:
        for element in self.elements:
            if element.name == name:
                return element
        return None

    def get_elements(self, name: str) -> List["StateElement"]:
        return [element for element in self.elements if element.name == name]

    def require_attribute(self, name: str) -> str:
        value = self.attributes.get(name)
        if value is None or value == "":
            raise InvalidPersistedState(f"Required attribute {name} is missing on {self.name}.")
        return value

    def int_attribute(self, name: str) -> int:
        value = self.require_attribute(name)
        try:
            return int(value)
        except ValueError as exc:
            raise InvalidPersistedState(f"Required attribute {name} on {self.name} is not a long.") from exc

    def float_attribute(self, name: str) -> float:
        value = self.require_attribute(name)
        try:
            return float(value)
        except ValueError as exc:
            raise InvalidPersistedState(f"Required attribute {name} on {self.name} is not a number.") from exc

    def expect(self, name: str) -> "StateElement":
        if self.name != name:
            raise InvalidPersistedState(f"Expected element {name}, got {self.name}.")
        return self

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": self.name}
        if self.attributes:
            payload["attributes"] = dict(self.attributes)
        if self.elements:
            payload["elements"] = [element.to_dict() for element in self.elements]
        return payload

    @classmethod
    def from_dict(cls, payload: Any) -> "StateElement":
        if not isinstance(payload, dict):
            raise InvalidPersistedState(f"Element must be an object, got {type(payload).__name__}.")
        name = payload.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidPersistedState("Element name is missing.")
        attributes = payload.get("attributes", {})
        if not isinstance(attributes, dict):
            raise InvalidPersistedState(f"Attributes of {name} must be an object.")
        children = payload.get("elements", [])
        if not isinstance(children, list):
            raise InvalidPersistedState(f"Elements of {name} must be a list.")
        return cls(
            name=name,
            attributes={str(key): str(value) for key, value in attributes.items()},
            elements=[cls.from_dict(child) for child in children],
        )
