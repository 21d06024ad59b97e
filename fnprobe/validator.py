"""Schema validation for the function source tree and its manifest."""

from __future__ import annotations

import json
from importlib import resources
from pathlib import Path

from jsonschema import Draft202012Validator
from jsonschema import ValidationError as SchemaError

from fnprobe.errors import ValidationError
from fnprobe.runtime import read_package_json

# --- Schema loaders ---------------------------------------------------------


def _load_schema(package: str, resource_name: str) -> dict:
    with resources.files(package).joinpath(resource_name).open("r", encoding="utf-8") as f:
        return json.load(f)


def _package_schema() -> dict:
    return _load_schema("fnprobe.schema", "package.schema.json")


def _functions_schema() -> dict:
    return _load_schema("fnprobe.schema", "functions.schema.json")


def _validate(schema: dict, data: object, what: str) -> None:
    try:
        Draft202012Validator(schema).validate(data)
    except SchemaError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ValidationError(f"{what} is invalid at {where}: {e.message}") from e


# --- Public validators ------------------------------------------------------


def validate_functions_manifest(data: object) -> None:
    _validate(_functions_schema(), data, "functions.yaml")


def package_json_is_valid(source_dir: Path, project_dir: Path) -> None:
    """Raise ValidationError unless *source_dir* holds a deployable package.json.

    Paths in messages are relative to *project_dir* so they match what the user
    sees in their project.
    """
    try:
        rel = source_dir.resolve().relative_to(project_dir.resolve())
    except ValueError:
        rel = source_dir
    pj = source_dir / "package.json"
    if not pj.exists():
        raise ValidationError(f"No npm package found in functions source directory {rel}.")

    data = read_package_json(source_dir)
    if data is None:
        raise ValidationError(f"{rel / 'package.json'} is not valid JSON.")
    _validate(_package_schema(), data, str(rel / "package.json"))

    main = data.get("main") or "index.js"
    if not (source_dir / main).exists():
        raise ValidationError(
            f"{rel / main} does not exist, can't deploy Cloud Functions"
        )
