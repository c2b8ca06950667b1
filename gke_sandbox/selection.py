"""Find the operator's sandboxes and pick one.

The menu and prompts go to the ``Terminal`` (stderr); the chosen VM is the
return value, so callers never have to parse anything out of the output.
"""

from __future__ import annotations

from loguru import logger
from rich.markup import escape

from gke_sandbox.cloud.protocol import CloudResourceClient
from gke_sandbox.constants import SANDBOX_TYPE, SandboxLabel
from gke_sandbox.naming import sanitize_label
from gke_sandbox.terminal import Terminal
from gke_sandbox.types import (
    Cancelled,
    InstanceRecord,
    NotFound,
    Selected,
    SelectionEntry,
    Selection,
)

log = logger.bind(component="selection")


def parse_choice(raw: str, size: int) -> int | None:
    """Menu answer as an int in ``[0, size]``, or None if it is not one."""
    raw = raw.strip()
    if not (raw.isascii() and raw.isdigit()):
        return None
    choice = int(raw)
    return choice if 0 <= choice <= size else None


def menu_line(index: int, entry: SelectionEntry) -> str:
    target = f"{escape(entry.name)} [blue](zone: {escape(entry.zone)})[/blue]"
    if entry.cluster:
        return f"  [bold]{index})[/bold] [green]{escape(entry.cluster)}[/green] → {target}"
    return f"  [bold]{index})[/bold] {target}"


class SandboxSelector:
    def __init__(self, client: CloudResourceClient, terminal: Terminal) -> None:
        self._client = client
        self._terminal = terminal

    def list_sandboxes(self, project: str, user: str) -> list[InstanceRecord]:
        """Sandboxes owned by ``user``, filtered server side and again here."""
        owner = sanitize_label(user)
        records = self._client.list_instances(
            project, {SandboxLabel.OWNER: owner, SandboxLabel.TYPE: SANDBOX_TYPE},
        )
        return sorted(
            (r for r in records if r.is_sandbox_of(owner)),
            key=lambda r: (r.zone, r.name),
        )

    def select_one(self, project: str, user: str) -> Selection:
        entries = [
            SelectionEntry(name=r.name, zone=r.zone, cluster=r.cluster)
            for r in self.list_sandboxes(project, user)
        ]

        if not entries:
            log.error(
                "No sandbox VMs found for user '{user}' in project '{project}'",
                user=user, project=project,
            )
            return NotFound(project=project, user=user)

        if len(entries) == 1:
            entry = entries[0]
            log.info(
                "Only one VM found: {name} (cluster: {cluster})",
                name=entry.name, cluster=entry.cluster or "-",
            )
            return Selected(entry)

        return self._prompt(entries)

    def _prompt(self, entries: list[SelectionEntry]) -> Selection:
        size = len(entries)
        self._terminal.header("Select a VM")
        self._terminal.line()
        for index, entry in enumerate(entries, start=1):
            self._terminal.line(menu_line(index, entry))
        self._terminal.line()
        self._terminal.line("  [bold]0)[/bold] Cancel")
        self._terminal.line()

        while True:
            answer = self._terminal.ask(f"Select a VM [0-{size}]:")
            if answer is None:
                choice = 0
                break
            choice = parse_choice(answer, size)
            if choice is not None:
                break
            self._terminal.warn(f"Invalid selection. Please enter a number between 0 and {size}")

        if choice == 0:
            log.info("Operation cancelled.")
            return Cancelled()
        return Selected(entries[choice - 1])

    def resolve(self, name: str | None, zone: str, project: str, user: str) -> Selection:
        """Use ``name`` as given, or fall back to the interactive menu."""
        if name:
            return Selected(SelectionEntry(name=name, zone=zone))
        return self.select_one(project, user)
