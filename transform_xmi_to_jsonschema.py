#!/usr/bin/env python3
"""Generate JSON Schema files from «JSONSchema» root classes in an XMI model."""

from __future__ import annotations

import argparse
import re
import sys
import unicodedata
import urllib.request
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from jsonschema import exceptions as jsonschema_exceptions
from jsonschema.validators import validator_for

from jsonschema_builder import DefinitionKeyStrategy, JsonSchemaGenerator
from schema_nodes import SchemaDocument
from uml_model import OUTPUT_FILE_TAG, SCHEMA_STEREOTYPE, ModelType, TransformationError
from xmi_model import XMIModel


def slugify(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value)
    ascii_value = normalized.encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^A-Za-z0-9]+", "_", ascii_value).strip("_")
    if not slug:
        raise TransformationError(f"Cannot derive a file name from {value!r}")
    return slug.lower()


def fetch_xmi_bytes(url: str, username: Optional[str] = None, password: Optional[str] = None) -> bytes:
    handlers = []
    if username:
        password_mgr = urllib.request.HTTPPasswordMgrWithDefaultRealm()
        password_mgr.add_password(None, url, username, password or "")
        handlers.append(urllib.request.HTTPBasicAuthHandler(password_mgr))
    opener = urllib.request.build_opener(*handlers)
    with opener.open(url) as response:
        return response.read()


def resolve_output_path(root: ModelType, output_dir: Path, explicit: Optional[Path] = None) -> Path:
    """Destination of the schema for ``root``.

    The root's ``outputFile`` tag wins, then the explicit path, then a file named
    after the root in ``output_dir``. Relative tag values are resolved against
    ``output_dir``.
    """
    tagged = root.get_tag_value(OUTPUT_FILE_TAG)
    if tagged:
        return output_dir / tagged
    if explicit is not None:
        return explicit
    return output_dir / f"{slugify(root.name)}.schema.json"


def check_schema(schema: Dict[str, Any]) -> None:
    validator = validator_for(schema)
    try:
        validator.check_schema(schema)
    except jsonschema_exceptions.SchemaError as exc:
        raise TransformationError(f"The generated schema is not valid: {exc.message}") from exc


def write_schema(document: SchemaDocument, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(document.to_json(), encoding="utf-8")


def select_roots(model: XMIModel, names: Optional[Sequence[str]]) -> List[ModelType]:
    if not names:
        roots = model.schema_roots()
        if not roots:
            raise TransformationError(f"Found no elements with the «{SCHEMA_STEREOTYPE}» stereotype")
        return roots
    roots = []
    for name in names:
        root = model.find_type(name)
        if root is None:
            raise TransformationError(f"Could not find the element '{name}'")
        if not root.has_stereotype(SCHEMA_STEREOTYPE):
            print(
                f"Warning: '{name}' does not have the «{SCHEMA_STEREOTYPE}» stereotype",
                file=sys.stderr,
            )
        roots.append(root)
    return roots


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--url", help="URL of the XMI model (used when --xmi is not given).")
    parser.add_argument("--username", help="User name for basic authentication against --url.")
    parser.add_argument("--password", help="Password for basic authentication against --url.")
    parser.add_argument("--xmi", type=Path, help="Read the XMI model from a local file.")
    parser.add_argument(
        "--root",
        action="append",
        help="Name of a root class to generate (can be repeated, default: every «JSONSchema» class).",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("jsonschemas"),
        help="Directory for the JSON Schema files (default: jsonschemas).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Output file, when a single schema is generated and its root has no outputFile tag.",
    )
    parser.add_argument(
        "--key-strategy",
        choices=[strategy.value for strategy in DefinitionKeyStrategy],
        default=DefinitionKeyStrategy.MIXED.value,
        help="How entries in 'definitions' are named (default: mixed).",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check every generated schema against the metaschema of its dialect.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_arguments(argv)
    if not args.xmi and not args.url:
        raise TransformationError("Provide either --xmi or --url to read the XMI model.")
    if args.xmi:
        data = args.xmi.read_bytes()
    else:
        data = fetch_xmi_bytes(args.url, args.username, args.password)
    model = XMIModel.from_bytes(data)
    roots = select_roots(model, args.root)
    if args.output and len(roots) > 1:
        raise TransformationError("--output can only be used when a single schema is generated")
    for root in roots:
        document = JsonSchemaGenerator(root, DefinitionKeyStrategy(args.key_strategy)).generate()
        if args.check:
            check_schema(document.to_dict())
        output_path = resolve_output_path(root, args.output_dir, args.output)
        write_schema(document, output_path)
        print(f"Wrote {output_path}")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except TransformationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
