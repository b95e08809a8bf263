"""
Extension registry.

Extensions are registered once at process start. Each may own one endpoint
type tag (or none, for aggregation-only extensions) and may post-process
every aggregated snapshot. The aggregator calls them in registration order.
"""

import threading
from abc import ABC
from typing import List, Optional

from ..exceptions import ErrorCode, ServiceError
from ..schemas.info_schemas import InfoSnapshot, PluginStatus
from ..utils.logger import get_logger


class Extension(ABC):
    """
    Base class for broker extensions.

    Subclasses set `name`, optionally `type_tag` and `version`, and override
    post_process() when they contribute to the snapshot.
    """

    name: str = ""
    version: str = "1.0.0"
    # Empty means the extension owns no endpoint type
    type_tag: str = ""

    def post_process(self, snapshot: InfoSnapshot, user_id: str, admin: bool) -> None:
        """
        Adjust the aggregated snapshot in place.

        Args:
            snapshot: Snapshot being built for this request
            user_id: Requesting user's id
            admin: Whether the requesting user is an administrator
        """
        return None

    def status(self, healthy: bool = True) -> PluginStatus:
        return PluginStatus(
            name=self.name, type_tag=self.type_tag, version=self.version, healthy=healthy
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, type_tag={self.type_tag!r})"


class ExtensionRegistry:
    """Ordered set of extensions, unique by name."""

    def __init__(self, extensions: Optional[List[Extension]] = None):
        self.logger = get_logger()
        self._lock = threading.Lock()
        self._extensions: tuple = ()
        for extension in extensions or []:
            self.register(extension)

    def register(self, extension: Extension) -> Extension:
        """
        Add an extension after those already registered.

        Raises:
            ServiceError: If the name is empty or already registered
        """
        if not extension.name:
            raise ServiceError(
                f"Extension {type(extension).__name__} has no name",
                error_code=ErrorCode.MISSING_REQUIRED,
                operation="register_extension",
            )
        with self._lock:
            taken = any(e.name == extension.name for e in self._extensions)
            if not taken:
                self._extensions = self._extensions + (extension,)
        if taken:
            raise ServiceError(
                f"Extension already registered: {extension.name}",
                error_code=ErrorCode.CONFLICT,
                operation="register_extension",
                extension=extension.name,
            )
        self.logger.debug(
            f"Registered extension: {extension.name}",
            extra={"extension": extension.name, "type_tag": extension.type_tag},
        )
        return extension

    def unregister(self, name: str) -> Optional[Extension]:
        with self._lock:
            removed = next((e for e in self._extensions if e.name == name), None)
            if removed is not None:
                self._extensions = tuple(e for e in self._extensions if e.name != name)
        if removed is not None:
            self.logger.debug(f"Unregistered extension: {name}", extra={"extension": name})
        return removed

    def extensions(self) -> List[Extension]:
        """Registered extensions in registration order."""
        return list(self._extensions)

    def owned_types(self) -> List[str]:
        """Distinct non-empty type tags, in the order their owners registered."""
        seen: List[str] = []
        for extension in self._extensions:
            if extension.type_tag and extension.type_tag not in seen:
                seen.append(extension.type_tag)
        return seen

    def __len__(self) -> int:
        return len(self._extensions)
