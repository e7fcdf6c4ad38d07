"""Loading and validation of YAML beacon tables."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from beaconctl.core.errors import RegistryLoadError, RegistryValidationError
from beaconctl.core.model import BeaconTarget
from beaconctl.core.registry import BeaconRegistry, validate_url

LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise RegistryValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedRegistry:
    registry: BeaconRegistry
    sources: tuple[str, ...]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("beaconctl.schemas").joinpath("beacon.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _registry_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "beaconctl/beacons", xdg_data / "beaconctl/beacons"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise RegistryLoadError(f"Could not read beacon table {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise RegistryValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise RegistryValidationError(f"Beacon table {path} must contain a mapping at root")
    return loaded


def _build_targets(doc: dict[str, Any], source: Path | Traversable, validator: Any) -> list[BeaconTarget]:
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise RegistryValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    targets: list[BeaconTarget] = []
    for index, entry in enumerate(doc["beacons"]):
        context = f"{source} beacons.{index}.url"
        targets.append(
            BeaconTarget(
                namespace=entry["namespace"].upper(),
                instance=entry["instance"].upper(),
                url=validate_url(entry["url"], context=context),
                label=entry.get("label", "").strip(),
            )
        )
    if not targets:
        LOGGER.warning("Beacon table %s defines no beacons", source)
    return targets


def _iter_packaged_paths() -> list[Traversable]:
    root = resources.files("beaconctl.beacons")
    return [item for item in root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _registry_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_registry(*, include_user: bool = True) -> LoadedRegistry:
    """Build the registry from packaged tables plus any user tables.

    A user entry reusing a packaged identifier is a configuration error, not an
    override.
    """
    targets: list[BeaconTarget] = []
    sources: list[str] = []
    warnings: list[str] = []
    origin: dict[str, str] = {}

    validator = _load_schema_validator()
    paths: list[Path | Traversable] = sorted(_iter_packaged_paths(), key=lambda p: p.name)
    if include_user:
        paths.extend(_iter_user_paths())

    for path in paths:
        doc = _read_yaml(path)
        for target in _build_targets(doc, path, validator):
            previous = origin.get(target.identifier)
            if previous is not None:
                raise RegistryValidationError(
                    f"Beacon '{target.identifier}' in {path} duplicates an entry from {previous}"
                )
            origin[target.identifier] = str(path)
            targets.append(target)
        sources.append(str(path))

    if not targets:
        warning = "No beacons configured; scanning will never match"
        LOGGER.warning(warning)
        warnings.append(warning)

    return LoadedRegistry(
        registry=BeaconRegistry(targets),
        sources=tuple(sources),
        warnings=tuple(warnings),
    )
