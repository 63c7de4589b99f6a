"""Loader for vulnerability catalog files (JSON or YAML) with validation.

A catalog file holds one of:

- a list of records, each carrying its ``slug``;
- a mapping ``slug -> list of records`` (the slug may then be omitted);
- a mapping with a ``vulnerabilities`` key holding a list of records.

Any read, parse or validation problem is fatal: a partial catalog would make
"no vulnerabilities found" indistinguishable from "catalog not loaded".
"""

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from extscout.data.vulnerabilities.models import (
    VulnerabilityCatalogFile,
    VulnerabilityRecord,
)

logger = logging.getLogger(__name__)

CATALOG_SUFFIXES = (".json", ".yaml", ".yml")


class CatalogLoadError(Exception):
    """Raised when the vulnerability catalog cannot be loaded."""

    pass


def _parse_file(file_path: Path) -> Any:
    """Read and parse one catalog file.

    Args:
        file_path: Path to a JSON or YAML file

    Returns:
        Parsed content

    Raises:
        CatalogLoadError: If the file cannot be read or parsed
    """
    try:
        with open(file_path, encoding="utf-8") as f:
            if file_path.suffix == ".json":
                return json.load(f)
            return yaml.safe_load(f)
    except FileNotFoundError:
        raise CatalogLoadError(f"Vulnerability catalog not found: {file_path}")
    except (OSError, UnicodeDecodeError) as e:
        raise CatalogLoadError(f"Cannot read vulnerability catalog {file_path}: {e}")
    except json.JSONDecodeError as e:
        raise CatalogLoadError(f"Invalid JSON in {file_path}: {e}")
    except yaml.YAMLError as e:
        raise CatalogLoadError(f"Invalid YAML in {file_path}: {e}")


def _normalize(data: Any, file_path: Path) -> list[Any]:
    """Flatten the accepted file layouts into a list of raw records."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if "vulnerabilities" in data and isinstance(data["vulnerabilities"], list):
            return data["vulnerabilities"]
        records: list[Any] = []
        for slug, entries in data.items():
            if not isinstance(entries, list):
                raise CatalogLoadError(
                    f"Entries for '{slug}' in {file_path} must be a list"
                )
            for entry in entries:
                if isinstance(entry, dict):
                    entry = {"slug": slug, **entry}
                records.append(entry)
        return records
    raise CatalogLoadError(
        f"Unexpected top-level {type(data).__name__} in {file_path}"
    )


def _validate_records(raw: list[Any], file_path: Path) -> list[VulnerabilityRecord]:
    """Validate raw records.

    Raises:
        CatalogLoadError: If any record is invalid
    """
    try:
        return VulnerabilityCatalogFile(vulnerabilities=raw).vulnerabilities
    except ValidationError as e:
        error_details = []
        for error in e.errors():
            loc = " -> ".join(str(l) for l in error["loc"])
            msg = error["msg"]
            error_details.append(f"  {loc}: {msg}")
        raise CatalogLoadError(
            f"Validation error in {file_path}:\n" + "\n".join(error_details)
        )


def load_catalog_file(file_path: Path) -> list[VulnerabilityRecord]:
    """Load vulnerability records from a single file.

    Args:
        file_path: Path to a JSON or YAML catalog file

    Returns:
        Records in declaration order

    Raises:
        CatalogLoadError: If the file is missing, unparseable or invalid
    """
    logger.debug(f"Loading vulnerability records from {file_path}")
    data = _parse_file(file_path)
    if data is None:
        raise CatalogLoadError(f"Vulnerability catalog is empty: {file_path}")
    records = _validate_records(_normalize(data, file_path), file_path)
    logger.info(f"Loaded {len(records)} vulnerabilities from {file_path.name}")
    return records


def catalog_files(source: Path) -> list[Path]:
    """List the catalog files under a path, in name order."""
    if source.is_dir():
        return sorted(
            p for p in source.iterdir()
            if p.is_file() and p.suffix in CATALOG_SUFFIXES
        )
    return [source]


def load_records(source: Path | str) -> list[VulnerabilityRecord]:
    """Load every record from a catalog file or directory.

    Args:
        source: File or directory path

    Returns:
        All records, files read in name order

    Raises:
        CatalogLoadError: If any file fails or nothing is loaded
    """
    path = Path(source)
    if not path.exists():
        raise CatalogLoadError(f"Vulnerability catalog not found: {path}")

    files = catalog_files(path)
    if not files:
        raise CatalogLoadError(f"No catalog files (.json, .yaml) in {path}")

    records: list[VulnerabilityRecord] = []
    for file_path in files:
        records.extend(load_catalog_file(file_path))

    if not records:
        raise CatalogLoadError(f"Vulnerability catalog at {path} holds no records")
    return records
