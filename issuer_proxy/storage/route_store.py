"""File-backed routing table store.

The in-memory table is the authoritative copy. It is loaded once at startup
and replaced wholesale on every mutation (copy-on-write), so readers always
see a complete committed table without taking a lock. Mutations are
serialized by a single lock and reach disk through a temp-file-then-rename
write before the new table becomes visible.
"""

import asyncio
import contextlib
import json
import os
import tempfile
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from .models import Route, default_table, normalize_hostname
from ..shared.errors import ConfigError, PersistenceError, ValidationError
from ..shared.logger import log_debug, log_info, log_warning, log_error


class RouteStore:
    """Owns the hostname to route mapping and its JSON file."""

    def __init__(self, path: str):
        """Initialize the store.

        Args:
            path: Location of the JSON routing table file
        """
        self.path = path
        self._routes: Dict[str, Route] = {}
        # Raw entries that failed validation on load; written back untouched
        self._unparsed: Dict[str, Any] = {}
        self._lock = asyncio.Lock()

    # Reads

    def get(self, hostname: str) -> Optional[Route]:
        """Look up a route by (raw or normalized) hostname."""
        return self._routes.get(normalize_hostname(hostname))

    def snapshot(self) -> Dict[str, Route]:
        """Copy of the most recently committed table."""
        return dict(self._routes)

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        """Committed table in its durable representation."""
        return self._serialize(self._routes)

    def __len__(self) -> int:
        return len(self._routes)

    def __contains__(self, hostname: str) -> bool:
        return normalize_hostname(hostname) in self._routes

    # Loading

    def load(self) -> Dict[str, Route]:
        """Load the table from disk, seeding defaults when needed.

        A missing or corrupt file is never fatal: the built-in defaults are
        used and written out. A corrupt file is moved aside first.
        """
        self._unparsed = {}
        try:
            table = self._read()
        except ConfigError as e:
            log_warning(f"Routing table unusable, falling back to defaults: {e.message}",
                        component="route_store", path=self.path)
            table = None

        if table is None:
            table = default_table()
            try:
                self.save(table)
                log_info("Created default routing table", component="route_store",
                         path=self.path, routes=len(table))
            except PersistenceError as e:
                log_error("Failed to persist default routing table", component="route_store",
                          path=self.path, error=e)
        else:
            log_info("Loaded routing table", component="route_store",
                     path=self.path, routes=len(table))

        self._routes = table
        return self.snapshot()

    def _read(self) -> Optional[Dict[str, Route]]:
        """Read and validate the file.

        Returns:
            The table, or None when the file does not exist

        Raises:
            ConfigError: The file is unreadable or not a JSON object
        """
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            log_info("No routing table on disk", component="route_store", path=self.path)
            return None
        except ValueError as e:
            self._quarantine()
            raise ConfigError(f"Malformed routing table {self.path}: {e}")
        except OSError as e:
            raise ConfigError(f"Cannot read routing table {self.path}: {e}")

        if not isinstance(data, dict):
            self._quarantine()
            raise ConfigError(f"Routing table {self.path} must be a JSON object")

        table: Dict[str, Route] = {}
        for hostname, record in data.items():
            if not isinstance(record, dict):
                log_warning("Skipping routing entry that is not an object; it is kept on disk as is",
                            component="route_store", hostname=hostname)
                self._unparsed[hostname] = record
                continue
            try:
                route = Route.from_record(hostname, record)
            except PydanticValidationError as e:
                log_warning("Skipping invalid routing entry; it is kept on disk as is",
                            component="route_store", hostname=hostname, error=str(e))
                self._unparsed[hostname] = record
                continue
            table[route.hostname] = route
        return table

    def _quarantine(self) -> None:
        """Move a corrupt file aside so the defaults do not destroy it."""
        corrupt_path = f"{self.path}.corrupt"
        try:
            os.replace(self.path, corrupt_path)
            log_warning("Moved corrupt routing table aside", component="route_store",
                        path=self.path, corrupt_path=corrupt_path)
        except OSError as e:
            log_error("Failed to move corrupt routing table aside", component="route_store",
                      path=self.path, error=e)

    # Writing

    @staticmethod
    def _serialize(table: Dict[str, Route]) -> Dict[str, Dict[str, str]]:
        return {hostname: route.to_record() for hostname, route in table.items()}

    def _file_data(self, table: Dict[str, Route]) -> Dict[str, Any]:
        """Table records plus unparsed entries no valid route has replaced."""
        data: Dict[str, Any] = {
            key: record for key, record in self._unparsed.items()
            if normalize_hostname(key) not in table
        }
        data.update(self._serialize(table))
        return data

    def save(self, table: Dict[str, Route]) -> None:
        """Write the full table atomically.

        The data goes to a temp file in the same directory, is fsynced and
        then renamed over the target, so readers of the file only ever see
        the old or the new content. Entries that failed validation on
        load are written back unchanged.

        Raises:
            PersistenceError: Any I/O failure; the previous file is intact
        """
        data = self._file_data(table)
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".routes-", suffix=".tmp", dir=directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                    f.write("\n")
                    f.flush()
                    os.fsync(f.fileno())
                os.chmod(tmp_path, 0o644)
                os.replace(tmp_path, self.path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise PersistenceError(f"Failed to save routing table {self.path}: {e}") from e

        log_debug("Saved routing table", component="route_store", path=self.path, routes=len(data))

    async def upsert(self, hostname: str, target: str, name: Optional[str] = None) -> Route:
        """Create or overwrite the route for a hostname.

        Returns only after the new table is on disk. Concurrent upserts are
        serialized; the commit runs shielded so a cancelled caller cannot
        leave the file and the in-memory table out of step.

        Raises:
            ValidationError: hostname or target rejected by the Route model
            PersistenceError: the table could not be written; nothing changed
        """
        try:
            route = Route(hostname=hostname, target=target, name=name or "")
        except PydanticValidationError as e:
            errors = "; ".join(err["msg"] for err in e.errors())
            raise ValidationError(errors, code="invalid route") from e

        return await asyncio.shield(self._commit(route))

    async def _commit(self, route: Route) -> Route:
        async with self._lock:
            current = self._routes
            if current.get(route.hostname) == route:
                log_debug("Route unchanged, skipping write", component="route_store",
                          hostname=route.hostname)
                return route

            updated = dict(current)
            updated[route.hostname] = route
            await asyncio.to_thread(self.save, updated)
            self._routes = updated

        log_info("Route registered", component="route_store", hostname=route.hostname,
                 target=route.target, name=route.name)
        return route
