"""In-memory class model used as input for JSON Schema generation."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional, Tuple

PROFILE_NAMESPACE = "EAJSON"
PROFILE_URI = "http://www.sparxsystems.com/profiles/EAJSON/1.0"

SCHEMA_STEREOTYPE = "JSONSchema"
ELEMENT_STEREOTYPE = "JSONElement"
DATATYPE_STEREOTYPE = "JSONDatatype"
ATTRIBUTE_STEREOTYPE = "JSONProperty"

SCHEMA_TAG = "schema"
ID_TAG = "id"
OUTPUT_FILE_TAG = "outputFile"
VERSION_TAG = "version"


class TransformationError(RuntimeError):
    """Raised when the transformation cannot be completed."""


def qualified_stereotype(name: str) -> str:
    return f"{PROFILE_NAMESPACE}::{local_stereotype_name(name)}"


def local_stereotype_name(name: str) -> str:
    return name.split("::")[-1].strip()


@dataclass(eq=False)
class TaggedValue:
    name: str
    value: Any = None

    @property
    def text(self) -> str:
        if self.value is None:
            return ""
        return str(self.value).strip()


@dataclass(eq=False)
class ModelElement:
    name: str
    element_id: Optional[str] = None
    stereotypes: List[str] = field(default_factory=list)
    tagged_values: List[TaggedValue] = field(default_factory=list)
    comments: List[str] = field(default_factory=list)
    version: Optional[str] = None

    def has_stereotype(self, name: str) -> bool:
        wanted = local_stereotype_name(name).lower()
        return any(local_stereotype_name(s).lower() == wanted for s in self.stereotypes)

    def get_tag(self, name: str) -> Optional[TaggedValue]:
        wanted = name.lower()
        for tag in self.tagged_values:
            if tag.name.lower() == wanted:
                return tag
        return None

    def get_tag_value(self, name: str) -> Optional[str]:
        tag = self.get_tag(name)
        if tag is None or not tag.text:
            return None
        return tag.text

    @property
    def documentation(self) -> str:
        """First owned comment, or an empty string."""
        for comment in self.comments:
            if comment:
                return comment
        return ""


@dataclass(eq=False)
class ModelType(ModelElement):
    pass


@dataclass(eq=False)
class Attribute(ModelElement):
    type: Optional[ModelType] = None
    lower: int = 1
    # None means unbounded ("*")
    upper: Optional[int] = 1
    is_unique: bool = False

    @property
    def is_multivalued(self) -> bool:
        return self.upper is None or self.upper > 1


@dataclass(eq=False)
class ModelClass(ModelType):
    attributes: List[Attribute] = field(default_factory=list)


@dataclass(eq=False)
class DataType(ModelType):
    generalizations: List[ModelType] = field(default_factory=list)


@dataclass(eq=False)
class EnumerationLiteral:
    name: str
    alias: Optional[str] = None

    @property
    def value(self) -> str:
        return self.alias or self.name


@dataclass(eq=False)
class Enumeration(DataType):
    literals: List[EnumerationLiteral] = field(default_factory=list)


@dataclass(eq=False)
class Package(ModelElement):
    elements: List[ModelType] = field(default_factory=list)
    packages: List["Package"] = field(default_factory=list)

    def iter_elements(self) -> Iterator[ModelType]:
        yield from self.elements
        for package in self.packages:
            yield from package.iter_elements()

    def iter_packages(self) -> Iterator["Package"]:
        yield self
        for package in self.packages:
            yield from package.iter_packages()

    def find_element(self, name: str) -> Optional[ModelType]:
        for element in self.iter_elements():
            if element.name == name:
                return element
        return None


class ModelStore(abc.ABC):
    """Write port of the model repository.

    Implementations must make ``add_stereotype`` idempotent per element:
    adding a stereotype the element already carries is a no-op.
    """

    @abc.abstractmethod
    def add_stereotype(self, element: ModelElement, qualified_name: str) -> None:
        ...

    @abc.abstractmethod
    def persist(self, element: ModelElement) -> None:
        ...


class InMemoryModelStore(ModelStore):
    """Model store that only keeps the model objects, recording every write."""

    def __init__(self) -> None:
        self.writes: List[Tuple[ModelElement, str]] = []
        self.persisted: List[ModelElement] = []

    def add_stereotype(self, element: ModelElement, qualified_name: str) -> None:
        self.writes.append((element, qualified_name))
        if not element.has_stereotype(qualified_name):
            element.stereotypes.append(qualified_stereotype(qualified_name))

    def persist(self, element: ModelElement) -> None:
        self.persisted.append(element)
