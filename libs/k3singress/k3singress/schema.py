"""
Schema loading and validation for ingress.yaml.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema
import yaml

from .types import IngressConfig

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schemas" / "ingress-schema.json"


def load_schema() -> Dict[str, Any]:
    """Load the JSON schema for ingress.yaml."""
    with open(SCHEMA_PATH) as f:
        return json.load(f)


def validate_ingress_yaml(data: Any) -> List[str]:
    """
    Validate ingress.yaml data against JSON schema.

    Returns list of validation errors (empty if valid).
    """
    validator = jsonschema.Draft7Validator(load_schema())
    errors = []
    for error in validator.iter_errors(data):
        path = ".".join(str(p) for p in error.absolute_path)
        errors.append(f"{path}: {error.message}" if path else error.message)
    return errors


def find_ingress_yaml() -> Optional[Path]:
    """
    Find ingress.yaml by searching up from current directory.

    Returns:
        Path to ingress.yaml or None if not found
    """
    current = Path.cwd()
    for parent in [current] + list(current.parents):
        candidate = parent / "ingress.yaml"
        if candidate.exists():
            return candidate
    return None


def load_ingress_yaml(
    path: Optional[str] = None,
    validate: bool = True,
) -> IngressConfig:
    """
    Load and parse ingress.yaml file.

    Args:
        path: Path to ingress.yaml. If not provided, searches up from cwd.
        validate: Whether to validate against schema

    Returns:
        Parsed IngressConfig

    Raises:
        FileNotFoundError: If ingress.yaml not found
        ValueError: If validation fails
    """
    ingress_path = Path(path) if path else find_ingress_yaml()
    if not ingress_path or not ingress_path.exists():
        raise FileNotFoundError(f"ingress.yaml not found at {path or Path.cwd()}")

    with open(ingress_path) as f:
        data = yaml.safe_load(f)

    if validate:
        errors = validate_ingress_yaml(data)
        if errors:
            raise ValueError("ingress.yaml validation failed:\n" + "\n".join(errors))

    logger.info(f"Loaded routing model from {ingress_path}")
    return IngressConfig.from_dict(data)
