#!/usr/bin/env python3
"""Mark the elements of a package with the stereotypes used for JSON Schema generation."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from uml_model import (
    ATTRIBUTE_STEREOTYPE,
    DATATYPE_STEREOTYPE,
    ELEMENT_STEREOTYPE,
    SCHEMA_STEREOTYPE,
    DataType,
    ModelClass,
    ModelStore,
    ModelType,
    Package,
    TransformationError,
    qualified_stereotype,
)
from xmi_model import XMIModel


def stereotype_for(element: ModelType, root_class: Optional[ModelType]) -> Optional[str]:
    if element is root_class:
        return SCHEMA_STEREOTYPE
    if isinstance(element, DataType):
        return DATATYPE_STEREOTYPE
    if isinstance(element, ModelClass):
        return ELEMENT_STEREOTYPE
    return None


def stamp(store: ModelStore, package: Package, root_class: Optional[ModelType]) -> int:
    """Stamp every classifier in ``package`` and its sub-packages.

    Classifier stereotypes are only added when missing. The attribute
    stereotype is written for every attribute on every call and relies on the
    store ignoring duplicates. Returns the number of classifiers visited.
    """
    visited = 0
    for element in package.elements:
        visited += 1
        stereotype = stereotype_for(element, root_class)
        if stereotype and not element.has_stereotype(stereotype):
            store.add_stereotype(element, qualified_stereotype(stereotype))
        if isinstance(element, ModelClass):
            for attribute in element.attributes:
                store.add_stereotype(attribute, qualified_stereotype(ATTRIBUTE_STEREOTYPE))
                store.persist(attribute)
        store.persist(element)
    for sub_package in package.packages:
        visited += stamp(store, sub_package, root_class)
    return visited


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--xmi", type=Path, required=True, help="XMI file containing the model.")
    parser.add_argument("--package", required=True, help="Name of the package to stamp.")
    parser.add_argument(
        "--root-class",
        help="Name of the class that becomes the schema root («JSONSchema»).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Where to write the stamped XMI (default: overwrite --xmi).",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_arguments(argv)
    model = XMIModel.from_file(args.xmi)
    package = model.find_package(args.package)
    if package is None:
        raise TransformationError(f"Could not find the package '{args.package}'")
    root_class = None
    if args.root_class:
        root_class = package.find_element(args.root_class)
        if root_class is None:
            raise TransformationError(
                f"Could not find the class '{args.root_class}' in package '{package.name}'"
            )
    visited = stamp(model, package, root_class)
    output_path = args.output or args.xmi
    model.save(output_path)
    print(f"Stamped {visited} elements in '{package.name}', wrote {output_path}")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except TransformationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
