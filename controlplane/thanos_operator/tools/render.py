"""
Render CLI for the Thanos operator.

Reads Querier/Store/Receiver manifests (YAML, one or more documents) and
prints the Service, Deployment and StatefulSet manifests the operator would
apply for them.

Usage:
    thanos-operator-render render -f querier.yaml
    thanos-operator-render validate -f stack.yaml
    cat receiver.yaml | thanos-operator-render render

Invariants:
    - Invalid input causes non-zero exit code
    - Output is deterministic (key order follows the builders)
    - Builder defaults come from the same THANOS_OPERATOR_* variables the
      operator reads

How to change safely:
    - Keep output format stable; it is diffed in CI
"""

from __future__ import annotations

import argparse
import sys
from typing import Any, Dict, List, Optional, TextIO

import yaml

from ..build.manifests import desired_children
from ..config import BuilderDefaults
from ..errors import InvalidSpecError
from ..reconcile.ownership import owner_reference_for, with_owner_reference
from ..resources.kinds import Role
from ..resources.types import ParentResource


class RenderCLI:
    """Offline rendering of parent manifests.

    Example:
        >>> cli = RenderCLI(BuilderDefaults())
        >>> children = cli.render(querier_manifest)
        >>> [c["kind"] for c in children]
        ['Service', 'Deployment']
    """

    def __init__(self, defaults: Optional[BuilderDefaults] = None) -> None:
        self.defaults = defaults or BuilderDefaults()

    def load(self, text: str) -> List[Dict[str, Any]]:
        """Parse YAML documents, skipping empty ones.

        Raises:
            InvalidSpecError: If the YAML is malformed or a document is not a mapping
        """
        try:
            documents = [d for d in yaml.safe_load_all(text) if d is not None]
        except yaml.YAMLError as e:
            raise InvalidSpecError(f"Malformed YAML: {e}")
        for doc in documents:
            if not isinstance(doc, dict):
                raise InvalidSpecError(f"Expected a mapping, got {type(doc).__name__}")
        return documents

    def parse(self, manifest: Dict[str, Any]) -> ParentResource:
        """Resolve the role and parse the spec of one parent manifest.

        Raises:
            InvalidSpecError: If the kind is unknown or the spec is invalid
        """
        role = Role.for_kind(manifest.get("kind", ""))
        metadata = manifest.get("metadata") or {}
        if not metadata.get("name"):
            raise InvalidSpecError("metadata.name is required", field_name="metadata.name")
        parent = ParentResource.from_manifest(role, manifest)
        parent.parse_spec()
        return parent

    def render(self, manifest: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Children of one parent, in reconcile order.

        Owner references are attached only when the manifest carries a uid.
        """
        parent = self.parse(manifest)
        children = desired_children(parent.role, parent.ref, parent.spec, self.defaults)
        if not parent.uid:
            return list(children.values())
        owner = owner_reference_for(parent)
        return [with_owner_reference(child, owner) for child in children.values()]

    def render_text(self, text: str) -> str:
        """Render every parent in a YAML stream to a YAML stream."""
        children: List[Dict[str, Any]] = []
        for manifest in self.load(text):
            children.extend(self.render(manifest))
        return yaml.safe_dump_all(children, sort_keys=False, default_flow_style=False)

    def validate(self, text: str) -> List[str]:
        """Validation errors for every document; empty when all are valid."""
        try:
            documents = self.load(text)
        except InvalidSpecError as e:
            return [e.message]

        errors = []
        for i, manifest in enumerate(documents):
            name = (manifest.get("metadata") or {}).get("name", f"document {i}")
            try:
                self.parse(manifest)
            except InvalidSpecError as e:
                errors.append(f"{manifest.get('kind', '?')}/{name}: {e.message}")
        return errors


def _read(path: Optional[str], stdin: TextIO) -> str:
    if path is None or path == "-":
        return stdin.read()
    with open(path) as f:
        return f.read()


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point for the render tool."""
    parser = argparse.ArgumentParser(description="Render Thanos operator children offline")
    subparsers = parser.add_subparsers(dest="command", required=True)

    render_parser = subparsers.add_parser("render", help="Print child manifests as YAML")
    render_parser.add_argument("--file", "-f", help="Parent manifest file (default: stdin)")
    render_parser.add_argument("--output", "-o", help="Output file (default: stdout)")

    validate_parser = subparsers.add_parser("validate", help="Validate parent manifests")
    validate_parser.add_argument("--file", "-f", help="Parent manifest file (default: stdin)")

    args = parser.parse_args(argv)

    try:
        defaults = BuilderDefaults.from_env()
        defaults.validate()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    cli = RenderCLI(defaults)
    try:
        text = _read(args.file, sys.stdin)
    except OSError as e:
        print(f"Error: cannot read {args.file}: {e.strerror or e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "render":
        try:
            output = cli.render_text(text)
        except InvalidSpecError as e:
            print(f"Invalid manifest: {e.message}", file=sys.stderr)
            sys.exit(1)

        if args.output:
            with open(args.output, "w") as f:
                f.write(output)
            print(f"Children written to {args.output}", file=sys.stderr)
        else:
            sys.stdout.write(output)

    elif args.command == "validate":
        errors = cli.validate(text)
        if not errors:
            print("All manifests are valid")
            sys.exit(0)
        else:
            print(f"Validation failed with {len(errors)} error(s):")
            for error in errors:
                print(f"  - {error}")
            sys.exit(1)


if __name__ == "__main__":
    main()
