from __future__ import annotations

from pathlib import Path
import sys

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from stamp_xmi_stereotypes import stamp
from uml_model import (
    Attribute,
    DataType,
    Enumeration,
    InMemoryModelStore,
    ModelClass,
    Package,
)
from xmi_model import XMIModel

SAMPLE_XMI = ROOT_DIR / "tests" / "data" / "person_model.xmi"


def _package():
    string = DataType(name="string")
    address = ModelClass(name="Address", attributes=[Attribute(name="street", type=string)])
    person = ModelClass(
        name="Person",
        attributes=[Attribute(name="name", type=string), Attribute(name="home", type=address)],
    )
    colour = Enumeration(name="Colour")
    note = ModelClass(name="Note", attributes=[Attribute(name="text", type=string)])
    archive = Package(name="Archive", elements=[note])
    package = Package(name="People", elements=[string, colour, address, person], packages=[archive])
    return package, person


def _local_names(element):
    return [s.split("::")[-1] for s in element.stereotypes]


def test_stamp_marks_classifiers_and_attributes():
    package, person = _package()
    store = InMemoryModelStore()

    visited = stamp(store, package, person)

    assert visited == 5
    elements = {e.name: e for e in package.iter_elements()}
    assert _local_names(elements["string"]) == ["JSONDatatype"]
    assert _local_names(elements["Colour"]) == ["JSONDatatype"]
    assert _local_names(elements["Address"]) == ["JSONElement"]
    assert _local_names(elements["Note"]) == ["JSONElement"]
    assert _local_names(person) == ["JSONSchema"]
    assert person.stereotypes == ["EAJSON::JSONSchema"]
    for element in (person, elements["Address"], elements["Note"]):
        for attribute in element.attributes:
            assert _local_names(attribute) == ["JSONProperty"]
    assert person in store.persisted


def test_stamp_twice_creates_no_duplicates():
    package, person = _package()
    store = InMemoryModelStore()

    stamp(store, package, person)
    first_writes = len(store.writes)
    stamp(store, package, person)

    for element in package.iter_elements():
        assert len(element.stereotypes) == 1
        for attribute in getattr(element, "attributes", []):
            assert len(attribute.stereotypes) == 1
    # only the attribute stereotype is written again
    repeated = store.writes[first_writes:]
    assert len(repeated) == 4
    assert all(name == "EAJSON::JSONProperty" for _, name in repeated)


def test_existing_stereotype_is_not_rewritten():
    package, person = _package()
    address = package.find_element("Address")
    address.stereotypes.append("OtherProfile::JSONElement")
    store = InMemoryModelStore()

    stamp(store, package, person)

    assert address.stereotypes == ["OtherProfile::JSONElement"]
    assert all(element is not address for element, _ in store.writes)


def test_stamp_without_root_class():
    package, person = _package()

    stamp(InMemoryModelStore(), package, None)

    assert _local_names(person) == ["JSONElement"]


def test_stamp_xmi_model_is_idempotent(tmp_path: Path):
    model = XMIModel.from_file(SAMPLE_XMI)
    people = model.find_package("People")
    stamp(model, people, model.find_type("Person"))
    first = tmp_path / "first.xmi"
    model.save(first)

    reloaded = XMIModel.from_file(first)
    stamp(reloaded, reloaded.find_package("People"), reloaded.find_type("Person"))
    second = tmp_path / "second.xmi"
    reloaded.save(second)

    assert first.read_bytes() == second.read_bytes()
    final = XMIModel.from_file(second)
    assert _local_names(final.find_type("Person")) == ["JSONSchema"]
    assert _local_names(final.find_type("Address")) == ["JSONElement"]
    assert _local_names(final.find_type("Age")) == ["JSONDatatype"]
    assert _local_names(final.find_type("Colour")) == ["JSONDatatype"]
    assert _local_names(final.find_type("Note")) == ["JSONElement"]
    for attribute in final.find_type("Person").attributes:
        assert _local_names(attribute) == ["JSONProperty"]
