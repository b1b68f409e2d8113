"""
Catalog of connection definitions.

A registry is built explicitly at startup, populated, frozen, and then passed
to the resolver and the services. There is no module-level instance.
"""

import importlib
import pkgutil
import threading
from types import ModuleType
from typing import Dict, List, Union

from ..exceptions import ConnectionDefinitionNotFoundError, DuplicateIdError, RegistryFrozenError
from ..schemas.credential_schemas import ConnectionDefinitionMetadata
from ..utils.logger import get_logger
from .definition import ConnectionDefinition


class ConnectionRegistry:
    """Definitions keyed by id; read-only after ``freeze()``."""

    def __init__(self):
        self._definitions: Dict[str, ConnectionDefinition] = {}
        self._frozen = False
        self._lock = threading.Lock()
        self.logger = get_logger()

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, definition: ConnectionDefinition) -> ConnectionDefinition:
        """
        Add a definition, or replace it with a newer version.

        Re-registering the same version with the same schema, metadata, expiry
        policy and hooks is a no-op; any other difference needs a version bump.

        Returns:
            The definition now stored under ``definition.id``

        Raises:
            RegistryFrozenError: If the registry was frozen
            DuplicateIdError: If the id is taken by a different definition at the same
                version, or by a newer version
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register '{definition.id}': registry is frozen",
                    connection_definition_id=definition.id,
                )

            existing = self._definitions.get(definition.id)
            if existing is None:
                self._definitions[definition.id] = definition
                self.logger.info(
                    "Registered connection definition",
                    extra={"connection_definition_id": definition.id, "version": definition.version},
                )
                return definition

            if existing.same_shape(definition):
                return existing

            if definition.version > existing.version:
                self._definitions[definition.id] = definition
                self.logger.info(
                    "Replaced connection definition with newer version",
                    extra={
                        "connection_definition_id": definition.id,
                        "previous_version": existing.version,
                        "version": definition.version,
                    },
                )
                return definition

            if definition.version == existing.version:
                message = (
                    f"Connection definition '{definition.id}' v{definition.version} is already "
                    "registered with a different shape; bump the version to change it"
                )
            else:
                message = (
                    f"Connection definition '{definition.id}' v{definition.version} is older than "
                    f"registered v{existing.version}"
                )
            raise DuplicateIdError(
                message,
                connection_definition_id=definition.id,
                registered_version=existing.version,
                version=definition.version,
            )

    def get(self, definition_id: str) -> ConnectionDefinition:
        definition = self._definitions.get(definition_id)
        if definition is None:
            raise ConnectionDefinitionNotFoundError(
                f"Connection definition not found: {definition_id}",
                connection_definition_id=definition_id,
            )
        return definition

    def __contains__(self, definition_id: object) -> bool:
        return definition_id in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def list_definitions(self) -> List[ConnectionDefinitionMetadata]:
        """Metadata of every definition, in registration order."""
        return [definition.metadata() for definition in list(self._definitions.values())]

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True
        self.logger.info("Connection registry frozen", extra={"definition_count": len(self._definitions)})

    def discover(self, package: Union[str, ModuleType]) -> List[ConnectionDefinition]:
        """
        Import every module of ``package`` and register its module-level definitions.

        Args:
            package: Package object or dotted package name

        Returns:
            Definitions registered by this call, in discovery order
        """
        if isinstance(package, str):
            package = importlib.import_module(package)

        modules = [package]
        if hasattr(package, "__path__"):
            for module_info in pkgutil.walk_packages(package.__path__, prefix=f"{package.__name__}."):
                modules.append(importlib.import_module(module_info.name))

        registered: List[ConnectionDefinition] = []
        for module in modules:
            for value in vars(module).values():
                if isinstance(value, ConnectionDefinition):
                    registered.append(self.register(value))

        self.logger.info(
            "Discovered connection definitions",
            extra={"package": package.__name__, "definition_count": len(registered)},
        )
        return registered
