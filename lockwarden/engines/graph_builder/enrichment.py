"""Advisory enrichment documents.

Enrichment never contributes identity: records are matched to lockfile
nodes by name and version, and only their annotations are merged.
"""

from __future__ import annotations

import json
import re
from typing import Any

from lockwarden.engines.graph_builder.models import EnrichmentRecord, source_from_dict
from lockwarden.exceptions import ParseFailure

# ``namespace.key``: ecosystem data stays out of top-level graph fields.
ANNOTATION_KEY_RE = re.compile(r"^[a-z0-9][a-z0-9_-]*\.[A-Za-z0-9_.-]+$")


def load_enrichment_document(content: str) -> dict[str, Any]:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ParseFailure(
            f"enrichment is not valid JSON: {exc.msg}",
            document="enrichment",
            line=exc.lineno,
            column=exc.colno,
        ) from exc
    if not isinstance(data, dict):
        raise ParseFailure("enrichment document must be a JSON object", document="enrichment")
    return data


def parse_generic_enrichment(data: dict[str, Any]) -> list[EnrichmentRecord]:
    """Parse the ecosystem-neutral form.

    Example::

        {"packages": [{"name": "ring", "version": "0.17.8",
                       "source": {"kind": "registry", "registry_url": "..."},
                       "annotations": {"audit.reviewed": true}}]}
    """
    packages = data.get("packages")
    if not isinstance(packages, list):
        raise ParseFailure("enrichment 'packages' must be a list", document="enrichment")

    records: list[EnrichmentRecord] = []
    for index, raw in enumerate(packages):
        if not isinstance(raw, dict):
            raise ParseFailure(
                f"enrichment package #{index} must be an object",
                document="enrichment",
                index=index,
            )
        name, version = raw.get("name"), raw.get("version")
        if not isinstance(name, str) or not isinstance(version, str):
            raise ParseFailure(
                f"enrichment package #{index} needs string 'name' and 'version'",
                document="enrichment",
                index=index,
            )
        source = None
        if raw.get("source") is not None:
            try:
                source = source_from_dict(raw["source"])
            except (KeyError, TypeError, ValueError) as exc:
                raise ParseFailure(
                    f"enrichment package {name} has an invalid source: {exc}",
                    document="enrichment",
                    index=index,
                ) from exc
        annotations = raw.get("annotations") or {}
        if not isinstance(annotations, dict):
            raise ParseFailure(
                f"enrichment package {name} annotations must be an object",
                document="enrichment",
                index=index,
            )
        records.append(
            EnrichmentRecord(
                name=name,
                version=version,
                source=source,
                checksum=raw.get("checksum"),
                annotations=dict(annotations),
            )
        )
    return records
