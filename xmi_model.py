"""Read UML class models from XMI and write stereotype applications back."""

from __future__ import annotations

import html
import io
import re
import sys
import xml.etree.ElementTree as ET
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple, Union

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as SafeET

from uml_model import (
    PROFILE_NAMESPACE,
    PROFILE_URI,
    SCHEMA_STEREOTYPE,
    VERSION_TAG,
    Attribute,
    DataType,
    Enumeration,
    EnumerationLiteral,
    ModelClass,
    ModelElement,
    ModelStore,
    ModelType,
    Package,
    TaggedValue,
    TransformationError,
    local_stereotype_name,
    qualified_stereotype,
)

XMI_NAMESPACES = (
    "http://www.omg.org/spec/XMI/20131001",
    "http://www.omg.org/XMI",
    "http://schema.omg.org/spec/XMI/2.1",
)
UML_NAMESPACES = (
    "http://www.omg.org/spec/UML/20131001",
    "http://www.omg.org/spec/UML/20161101",
    "http://schema.omg.org/spec/UML/2.1",
    "http://www.eclipse.org/uml2/5.0.0/UML",
)
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
XSI_TYPE = f"{{{XSI_NS}}}type"

CLASSIFIER_KINDS = {"uml:Class", "uml:DataType", "uml:PrimitiveType", "uml:Enumeration"}
PACKAGE_KINDS = {"uml:Package", "uml:Model"}

HTML_TAG_RE = re.compile(r"<[^>]+>")
WHITESPACE_RE = re.compile(r"\s+")


def clean_whitespace(value: str) -> str:
    return WHITESPACE_RE.sub(" ", value).strip()


def clean_comment(value: Optional[str]) -> str:
    if not value:
        return ""
    return clean_whitespace(HTML_TAG_RE.sub(" ", html.unescape(value)))


def strip_namespace(tag: str) -> str:
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def namespace_of(tag: str) -> Optional[str]:
    if tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return None


def get_xmi_attribute(element: ET.Element, local_name: str) -> Optional[str]:
    for namespace in XMI_NAMESPACES:
        value = element.get(f"{{{namespace}}}{local_name}")
        if value:
            return value
    return None


def get_xmi_id(element: ET.Element) -> Optional[str]:
    return get_xmi_attribute(element, "id")


def get_xmi_idref(element: ET.Element) -> Optional[str]:
    return get_xmi_attribute(element, "idref")


def get_xmi_type(element: ET.Element) -> Optional[str]:
    value = get_xmi_attribute(element, "type")
    if value:
        return value
    return element.get(XSI_TYPE)


def element_kind(element: ET.Element) -> Optional[str]:
    kind = get_xmi_type(element)
    if kind:
        return kind
    if namespace_of(element.tag) in UML_NAMESPACES:
        return f"uml:{strip_namespace(element.tag)}"
    return None


@contextmanager
def _document_prefixes(namespaces: Dict[str, str]) -> Iterator[None]:
    """Serialize with the document's own prefixes, leaving ElementTree's registry as it was."""
    # ElementTree only reads prefixes from its module-level registry
    saved = dict(ET._namespace_map)
    try:
        for prefix, uri in namespaces.items():
            if not prefix or re.match(r"ns\d+$", prefix):
                continue
            ET.register_namespace(prefix, uri)
        yield
    finally:
        ET._namespace_map.clear()
        ET._namespace_map.update(saved)


class XMIModel(ModelStore):
    """Class model indexed from an XMI document.

    Stereotypes are read from stereotype applications (profile elements with a
    ``base_<Metaclass>`` attribute); their remaining attributes become tagged
    values of the extended element, next to plain ``taggedValue`` children.
    """

    def __init__(self, root: ET.Element, namespaces: Optional[Dict[str, str]] = None) -> None:
        self.root = root
        self.namespaces: Dict[str, str] = dict(namespaces or {})
        self.elements_by_id: Dict[str, ET.Element] = {}
        self.element_type_by_id: Dict[str, str] = {}
        self.comments_by_element: Dict[str, List[str]] = {}
        self.stereotypes_by_element: Dict[str, List[str]] = {}
        self.stereotype_tags: Dict[str, List[TaggedValue]] = {}
        self.model_elements: Dict[str, ModelElement] = {}
        self.external_types: Dict[str, DataType] = {}
        self.packages: List[Package] = []
        self.dirty: Set[str] = set()
        self._index_elements()
        self._collect_comments()
        self._collect_stereotype_applications()
        self._create_types()
        self._link_types()
        self._build_packages()

    @classmethod
    def from_bytes(cls, data: bytes) -> "XMIModel":
        namespaces: Dict[str, str] = {}
        root: Optional[ET.Element] = None
        try:
            for event, item in SafeET.iterparse(io.BytesIO(data), events=("start", "start-ns")):
                if event == "start-ns":
                    prefix, uri = item
                    namespaces.setdefault(prefix, uri)
                elif root is None:
                    root = item
        except (ET.ParseError, DefusedXmlException) as exc:
            raise TransformationError(f"Could not parse XMI: {exc}") from exc
        if root is None:
            raise TransformationError("The XMI document is empty")
        return cls(root, namespaces)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "XMIModel":
        return cls.from_bytes(Path(path).read_bytes())

    @property
    def xmi_namespace(self) -> str:
        uri = self.namespaces.get("xmi")
        return uri if uri else XMI_NAMESPACES[0]

    def _index_elements(self) -> None:
        for elem in self.root.iter():
            elem_id = get_xmi_id(elem)
            if not elem_id:
                continue
            self.elements_by_id[elem_id] = elem
            kind = element_kind(elem)
            if kind:
                self.element_type_by_id[elem_id] = kind

    def _collect_comments(self) -> None:
        for parent in self.root.iter():
            for comment in parent.findall("ownedComment"):
                body = clean_comment(comment.get("body") or comment.findtext("body"))
                if not body:
                    continue
                targets = [self._resolve_ref(target) for target in comment.findall("annotatedElement")]
                targets = [target for target in targets if target]
                if not targets:
                    owner = get_xmi_id(parent)
                    targets = [owner] if owner else []
                for element_id in targets:
                    self.comments_by_element.setdefault(element_id, []).append(body)

    def _collect_stereotype_applications(self) -> None:
        prefixes = {uri: prefix for prefix, uri in self.namespaces.items() if prefix}
        for node in self.root.iter():
            namespace = namespace_of(node.tag)
            if namespace is None or namespace in XMI_NAMESPACES or namespace in UML_NAMESPACES:
                continue
            targets = [value for key, value in node.attrib.items() if key.startswith("base_")]
            if not targets:
                continue
            local_name = strip_namespace(node.tag)
            prefix = prefixes.get(namespace)
            stereotype = f"{prefix}::{local_name}" if prefix else local_name
            tags: List[TaggedValue] = []
            for key, value in node.attrib.items():
                if key.startswith("{") or key.startswith("base_"):
                    continue
                tags.append(TaggedValue(key, value))
            for child in node:
                if len(child) == 0 and child.text and child.text.strip():
                    tags.append(TaggedValue(strip_namespace(child.tag), child.text.strip()))
            for target in targets:
                self.stereotypes_by_element.setdefault(target, []).append(stereotype)
                self.stereotype_tags.setdefault(target, []).extend(tags)

    def _extract_tagged_value(self, node: ET.Element) -> Optional[str]:
        value_node = node.find("value")
        if value_node is not None:
            text_value = value_node.text
            if text_value:
                return text_value.strip()
        attr_value = node.get("value")
        if attr_value:
            return attr_value.strip()
        return None

    def _tagged_values(self, element: ET.Element, element_id: Optional[str]) -> List[TaggedValue]:
        tags: List[TaggedValue] = []
        for tagged in element.findall("taggedValue"):
            name = tagged.get("name") or tagged.get("tag")
            if not name:
                continue
            tags.append(TaggedValue(name, self._extract_tagged_value(tagged) or ""))
        if element_id:
            tags.extend(self.stereotype_tags.get(element_id, []))
        return tags

    def _common_fields(self, element: ET.Element) -> Dict[str, Any]:
        element_id = get_xmi_id(element)
        tags = self._tagged_values(element, element_id)
        version = None
        for tag in tags:
            if tag.name.lower() == VERSION_TAG and tag.text:
                version = tag.text
                break
        return {
            "name": element.get("name") or element_id or "",
            "element_id": element_id,
            "stereotypes": list(self.stereotypes_by_element.get(element_id or "", [])),
            "tagged_values": tags,
            "comments": list(self.comments_by_element.get(element_id or "", [])),
            "version": version,
        }

    def _create_types(self) -> None:
        for elem_id, kind in self.element_type_by_id.items():
            if kind not in CLASSIFIER_KINDS:
                continue
            element = self.elements_by_id[elem_id]
            fields = self._common_fields(element)
            if kind == "uml:Class":
                self.model_elements[elem_id] = ModelClass(**fields)
            elif kind == "uml:Enumeration":
                literals = []
                for literal in element.findall("ownedLiteral"):
                    name = literal.get("name")
                    if not name:
                        continue
                    alias = literal.get("alias")
                    if not alias:
                        literal_tags = self._tagged_values(literal, get_xmi_id(literal))
                        alias = next((t.text for t in literal_tags if t.name.lower() == "alias"), None)
                    literals.append(EnumerationLiteral(name, alias or None))
                self.model_elements[elem_id] = Enumeration(literals=literals, **fields)
            else:
                self.model_elements[elem_id] = DataType(**fields)

    def _link_types(self) -> None:
        for elem_id, model_type in list(self.model_elements.items()):
            element = self.elements_by_id[elem_id]
            if isinstance(model_type, ModelClass):
                for owned in element.findall("ownedAttribute"):
                    # association ends are connectors, not attributes
                    if owned.get("association"):
                        continue
                    attribute = self._build_attribute(owned)
                    model_type.attributes.append(attribute)
            elif isinstance(model_type, DataType):
                for gen in element.findall("generalization"):
                    general_id = gen.get("general") or self._resolve_ref(gen.find("general"))
                    general = self.model_elements.get(general_id or "")
                    if isinstance(general, ModelType):
                        model_type.generalizations.append(general)

    def _build_attribute(self, prop: ET.Element) -> Attribute:
        lower, upper = self.get_multiplicity(prop)
        attribute = Attribute(
            type=self.resolve_type(prop),
            lower=lower,
            upper=upper,
            is_unique=prop.get("isUnique", "true").strip().lower() != "false",
            **self._common_fields(prop),
        )
        if attribute.element_id:
            self.model_elements[attribute.element_id] = attribute
        return attribute

    def _build_packages(self) -> None:
        def walk(node: ET.Element, package: Optional[Package]) -> None:
            for child in node:
                child_id = get_xmi_id(child)
                if element_kind(child) in PACKAGE_KINDS:
                    sub_package = self._create_package(child)
                    if package is None:
                        self.packages.append(sub_package)
                    else:
                        package.packages.append(sub_package)
                    walk(child, sub_package)
                    continue
                model_type = self.model_elements.get(child_id or "")
                if isinstance(model_type, ModelType):
                    if package is not None:
                        package.elements.append(model_type)
                    continue
                walk(child, package)

        if element_kind(self.root) in PACKAGE_KINDS:
            top = self._create_package(self.root)
            self.packages.append(top)
            walk(self.root, top)
        else:
            walk(self.root, None)

    def _create_package(self, element: ET.Element) -> Package:
        package = Package(**self._common_fields(element))
        if package.element_id:
            self.model_elements[package.element_id] = package
        return package

    def _resolve_ref(self, node: Optional[ET.Element]) -> Optional[str]:
        if node is None:
            return None
        ref = get_xmi_idref(node)
        if ref:
            return ref
        href = node.get("href")
        if href and "#" in href:
            return href.split("#")[-1]
        return None

    def get_multiplicity(self, prop: ET.Element) -> Tuple[int, Optional[int]]:
        lower_node = prop.find("lowerValue")
        upper_node = prop.find("upperValue")
        lower = 1
        if lower_node is not None:
            lower = self._parse_bound(prop, lower_node.get("value") or "0")
        upper: Optional[int] = 1
        if upper_node is not None:
            upper_text = (upper_node.get("value") or "1").strip()
            upper = None if upper_text in {"*", "-1"} else self._parse_bound(prop, upper_text)
        return lower, upper

    def _parse_bound(self, prop: ET.Element, value: str) -> int:
        try:
            return int(value)
        except ValueError as exc:
            raise TransformationError(
                f"Invalid multiplicity {value!r} on attribute '{prop.get('name')}'"
            ) from exc

    def resolve_type(self, prop: ET.Element) -> Optional[ModelType]:
        type_id = prop.get("type")
        type_node = prop.find("type")
        reference_path: Optional[str] = None
        if not type_id and type_node is not None:
            type_id = self._resolve_ref(type_node)
            ref_ext = type_node.find(".//referenceExtension")
            if ref_ext is not None:
                reference_path = ref_ext.get("referentPath")
        if type_id:
            target = self.model_elements.get(type_id)
            if isinstance(target, ModelType):
                return target
        # types outside the document, e.g. the UML primitive type library
        if type_node is not None and type_node.get("href"):
            name = reference_path.split("::")[-1] if reference_path else type_id
            if name:
                return self._external_type(name)
        print(
            f"Warning: could not resolve the type of attribute '{prop.get('name')}', leaving it untyped",
            file=sys.stderr,
        )
        return None

    def _external_type(self, name: str) -> DataType:
        if name not in self.external_types:
            self.external_types[name] = DataType(name=name)
        return self.external_types[name]

    def iter_types(self) -> Iterator[ModelType]:
        for element in self.model_elements.values():
            if isinstance(element, ModelType):
                yield element

    def find_type(self, name: str) -> Optional[ModelType]:
        for model_type in self.iter_types():
            if model_type.name == name:
                return model_type
        return None

    def find_package(self, name: str) -> Optional[Package]:
        wanted = name.lower()
        for top in self.packages:
            for package in top.iter_packages():
                if package.name.lower() == wanted:
                    return package
        return None

    def schema_roots(self) -> List[ModelType]:
        return [t for t in self.iter_types() if t.has_stereotype(SCHEMA_STEREOTYPE)]

    def _metaclass(self, element_id: str) -> str:
        kind = self.element_type_by_id.get(element_id)
        if kind:
            return kind.split(":")[-1]
        tag = strip_namespace(self.elements_by_id[element_id].tag)
        return "Property" if tag == "ownedAttribute" else tag

    def add_stereotype(self, element: ModelElement, qualified_name: str) -> None:
        if element.has_stereotype(qualified_name):
            return
        element_id = element.element_id
        if not element_id or self.model_elements.get(element_id) is not element:
            raise TransformationError(f"Element {element.name!r} does not belong to this XMI document")
        local_name = local_stereotype_name(qualified_name)
        profile_uri = self.namespaces.setdefault(PROFILE_NAMESPACE, PROFILE_URI)
        ET.SubElement(
            self.root,
            f"{{{profile_uri}}}{local_name}",
            {
                f"{{{self.xmi_namespace}}}id": f"{element_id}_{local_name}",
                f"base_{self._metaclass(element_id)}": element_id,
            },
        )
        element.stereotypes.append(qualified_stereotype(local_name))
        self.stereotypes_by_element.setdefault(element_id, []).append(qualified_stereotype(local_name))

    def persist(self, element: ModelElement) -> None:
        if element.element_id:
            self.dirty.add(element.element_id)

    def to_bytes(self) -> bytes:
        with _document_prefixes(self.namespaces):
            return ET.tostring(self.root, encoding="utf-8", xml_declaration=True)

    def save(self, path: Union[str, Path]) -> None:
        Path(path).write_bytes(self.to_bytes())
        self.dirty.clear()
