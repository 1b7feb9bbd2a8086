"""Host registry and CSV host-list loader.

The host list is a CSV file with the columns Server, Username, KeyPath and an
optional Port (default 22). It is loaded once into a read-only HostRegistry.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable, Iterator
from pathlib import Path

from pydantic import ValidationError

from fleet_remediator.exceptions import ConfigError
from fleet_remediator.models import HostDescriptor

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("Server", "Username", "KeyPath")
DEFAULT_SSH_PORT = 22


class HostRegistry:
    """Read-only, ordered collection of host descriptors keyed by host id."""

    def __init__(self, hosts: Iterable[HostDescriptor] = ()) -> None:
        self._hosts: dict[str, HostDescriptor] = {}
        for host in hosts:
            if host.host_id in self._hosts:
                logger.warning("Duplicate host %s ignored", host.host_id)
                continue
            self._hosts[host.host_id] = host

    def get(self, host_id: str) -> HostDescriptor | None:
        return self._hosts.get(host_id)

    def __contains__(self, host_id: object) -> bool:
        return host_id in self._hosts

    def __iter__(self) -> Iterator[HostDescriptor]:
        return iter(self._hosts.values())

    def __len__(self) -> int:
        return len(self._hosts)

    def to_list(self) -> list[HostDescriptor]:
        return list(self._hosts.values())


def parse_host_row(row: dict[str, str | None], line_no: int) -> HostDescriptor:
    """Build a HostDescriptor from one CSV row.

    Raises:
        ConfigError: If a required column is blank or the port is invalid.
    """
    missing = [col for col in REQUIRED_COLUMNS if not (row.get(col) or "").strip()]
    if missing:
        raise ConfigError(
            f"Host list line {line_no}: missing {', '.join(missing)}",
            details={"line": line_no, "missing": missing},
        )
    raw_port = (row.get("Port") or "").strip()
    try:
        port = int(raw_port) if raw_port else DEFAULT_SSH_PORT
        return HostDescriptor(
            address=row["Server"].strip(),
            username=row["Username"].strip(),
            key_path=row["KeyPath"].strip(),
            port=port,
        )
    except (ValueError, ValidationError) as exc:
        raise ConfigError(
            f"Host list line {line_no}: invalid port {raw_port!r}",
            details={"line": line_no, "port": raw_port},
        ) from exc


def load_hosts_csv(path: str | Path) -> HostRegistry:
    """Load the host list CSV into a HostRegistry.

    Blank lines are skipped. Any malformed row fails the whole load.

    Args:
        path: Path to the CSV file.

    Returns:
        A HostRegistry in file order.

    Raises:
        ConfigError: If the file is missing, lacks required columns, or has a bad row.
    """
    file_path = Path(path)
    if not file_path.exists():
        raise ConfigError(f"Host list not found: {file_path}", details={"path": str(file_path)})

    hosts: list[HostDescriptor] = []
    with file_path.open(newline="", encoding="utf-8-sig") as fh:
        reader = csv.DictReader(fh)
        columns = [c.strip() for c in reader.fieldnames or []]
        absent = [col for col in REQUIRED_COLUMNS if col not in columns]
        if absent:
            raise ConfigError(
                f"Host list {file_path} is missing columns: {', '.join(absent)}",
                details={"path": str(file_path), "columns": columns},
            )
        reader.fieldnames = columns
        for row in reader:
            if not any((value or "").strip() for value in row.values() if isinstance(value, str)):
                continue
            hosts.append(parse_host_row(row, reader.line_num))

    logger.info("Loaded %d hosts from %s", len(hosts), file_path)
    return HostRegistry(hosts)
