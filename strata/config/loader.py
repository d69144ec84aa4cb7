"""YAML manifest loader for Strata objects."""
from pathlib import Path
from typing import Any, Dict, List, Tuple

import yaml
from pydantic import ValidationError as PydanticValidationError

from strata.core.errors import ConfigurationError, NotFoundError
from strata.core.logger import get_logger
from strata.core.store import ObjectStore
from strata.models import KINDS
from strata.models.meta import Resource

logger = get_logger(__name__)

CREATED = "created"
CONFIGURED = "configured"
UNCHANGED = "unchanged"


class ManifestError(ConfigurationError):
    """Raised when a manifest cannot be turned into objects."""


class ManifestLoader:
    """Loads multi-document YAML manifests of `kind:` objects.

    Each document needs a `kind` naming one of the registered models and a
    `metadata.name`; the rest of the document is validated by that model.
    """

    def __init__(self, manifest_path: str):
        self.manifest_path = Path(manifest_path)
        self.objects: List[Resource] = []

    def load(self) -> List[Resource]:
        if not self.manifest_path.exists():
            raise ManifestError(f"Manifest not found: {self.manifest_path}")

        with open(self.manifest_path) as f:
            try:
                documents = [doc for doc in yaml.safe_load_all(f) if doc]
            except yaml.YAMLError as e:
                raise ManifestError(f"Invalid YAML in {self.manifest_path}: {e}") from e

        if not documents:
            raise ManifestError(f"Manifest {self.manifest_path} is empty")

        self.objects = [self.parse(doc, index) for index, doc in enumerate(documents, start=1)]
        logger.debug(f"Loaded {len(self.objects)} objects from {self.manifest_path}")
        return self.objects

    @staticmethod
    def parse(document: Dict[str, Any], index: int = 1) -> Resource:
        """Validate one manifest document into its model."""
        if not isinstance(document, dict):
            raise ManifestError(f"Document {index} is not a mapping")

        data = dict(document)
        kind = data.pop("kind", None)
        cls = KINDS.get(kind)
        if cls is None:
            raise ManifestError(
                f"Document {index}: unknown kind '{kind}' (expected one of: {', '.join(sorted(KINDS))})"
            )
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ManifestError(f"Document {index} ({kind}): {e}") from e

    def apply(self, store: ObjectStore) -> List[Tuple[Resource, str]]:
        """Create or update every loaded object in the store.

        Existing objects keep their status and finalizers; spec, labels and
        annotations come from the manifest.
        """
        if not self.objects:
            self.load()

        results = []
        for obj in self.objects:
            results.append(apply_object(store, obj))
        return results


def apply_object(store: ObjectStore, obj: Resource) -> Tuple[Resource, str]:
    cls = type(obj)
    try:
        current = store.get(cls, obj.name, obj.metadata.namespace or None)
    except NotFoundError:
        created = store.create(obj)
        logger.info(f"{cls.kind}/{created.name} created")
        return created, CREATED

    desired = current.model_copy(deep=True)
    desired.metadata.labels.update(obj.labels)
    desired.metadata.annotations.update(obj.annotations)
    if "spec" in cls.model_fields:
        desired.spec = obj.spec

    if desired.model_dump(mode="json") == current.model_dump(mode="json"):
        return current, UNCHANGED

    updated = store.update(desired)
    logger.info(f"{cls.kind}/{updated.name} configured")
    return updated, CONFIGURED
