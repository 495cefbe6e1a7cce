"""
hostscale Installation Metadata

Small typed key/value store describing the installation (deployment mode,
detected cloud, global auto-scaling flag). Values are kept as strings on
disk together with their type and cast back on read.
"""

import json
import logging
import threading
from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)

VALUE_TYPES = ("string", "boolean", "integer", "json")


@dataclass
class MetadataEntry:
    """One stored metadata value"""
    key: str
    value: str
    type: str = "string"
    description: Optional[str] = None
    is_editable: bool = True
    updated_at: Optional[str] = None

    def typed_value(self) -> Any:
        return cast_value(self.value, self.type)


def cast_value(value: Optional[str], value_type: str) -> Any:
    """Cast a stored string back to its declared type"""
    if value is None:
        return None
    if value_type == "boolean":
        return value.strip().lower() in ("1", "true", "yes", "on")
    if value_type == "integer":
        try:
            return int(value)
        except ValueError:
            return 0
    if value_type == "json":
        return json.loads(value)
    return value


def prepare_value(value: Any, value_type: str) -> str:
    """Serialize a value for storage"""
    if value_type == "boolean":
        return "true" if value else "false"
    if value_type == "integer":
        return str(int(value))
    if value_type == "json":
        return json.dumps(value)
    return str(value)


class InstallationMetadata:
    """
    JSON-file backed metadata store.

    Example:
        metadata = InstallationMetadata(".hostscale/metadata.json")
        metadata.update_or_create("deployment_mode", "kubernetes", is_editable=False)
        metadata.get_value("deployment_mode")  # "kubernetes"
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.RLock()
        self._entries: Dict[str, MetadataEntry] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            logger.debug(f"No metadata file at {self.path}, starting empty")
            return

        try:
            with open(self.path, 'r') as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read installation metadata: {e}", path=str(self.path)) from e

        for key, entry in raw.items():
            self._entries[key] = MetadataEntry(key=key, **{k: v for k, v in entry.items() if k != "key"})

    def _persist(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                json.dump({key: asdict(entry) for key, entry in self._entries.items()}, f, indent=2)
        except OSError as e:
            raise StorageError(f"Failed to write installation metadata: {e}", path=str(self.path)) from e

    def get_value(self, key: str, default: Any = None) -> Any:
        """Typed value for ``key``, or ``default`` when absent"""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            return entry.typed_value()

    def get_entry(self, key: str) -> Optional[MetadataEntry]:
        with self._lock:
            return self._entries.get(key)

    def set_value(self, key: str, value: Any) -> bool:
        """
        Update an existing editable entry.

        Returns False when the key does not exist or is read-only.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if not entry.is_editable:
                logger.warning(f"Refusing to change read-only metadata key: {key}")
                return False

            entry.value = prepare_value(value, entry.type)
            entry.updated_at = datetime.now().isoformat()
            self._persist()
            return True

    def update_or_create(
        self,
        key: str,
        value: Any,
        type: str = "string",
        description: Optional[str] = None,
        is_editable: bool = True
    ) -> MetadataEntry:
        """Write an entry regardless of its editable flag"""
        if type not in VALUE_TYPES:
            raise ValidationError(
                f"Invalid metadata type: {type}",
                field="type",
                value=type,
                context={"valid_types": list(VALUE_TYPES)}
            )

        with self._lock:
            entry = MetadataEntry(
                key=key,
                value=prepare_value(value, type),
                type=type,
                description=description,
                is_editable=is_editable,
                updated_at=datetime.now().isoformat(),
            )
            self._entries[key] = entry
            self._persist()
            logger.debug(f"Metadata '{key}' set to {entry.value!r}")
            return entry

    def delete(self, key: str) -> bool:
        with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self._persist()
            return True

    def all(self) -> Dict[str, Any]:
        """All metadata as a key -> typed value mapping"""
        with self._lock:
            return {key: entry.typed_value() for key, entry in self._entries.items()}
