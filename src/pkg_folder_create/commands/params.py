"""Parsers and builders for folder create command XML and broadcast control XML."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar

from defusedxml import DefusedXmlException, ElementTree

CLIENT_PERSPECTIVE = "client"


class CommandXmlError(ValueError):
    """Task payload could not be turned into command parameters."""


class BroadcastXmlError(ValueError):
    """Broadcast message could not be parsed."""


@dataclass(frozen=True, slots=True)
class ParamsV0:
    """Old-style payload: ``local``/``share`` roots plus team, year and folder."""

    version: ClassVar[int] = 0

    package: str
    local: str
    share: str
    year: str
    team: str
    directory: str

    def root_for(self, perspective: str) -> str:
        return self.share if _is_client(perspective) else self.local

    def segments(self) -> list[str]:
        return [part for part in (self.team, self.year, self.directory) if part]

    def as_dict(self) -> dict[str, str]:
        return {
            "package": self.package,
            "local": self.local,
            "share": self.share,
            "year": self.year,
            "team": self.team,
            "directory": self.directory,
        }


@dataclass(frozen=True, slots=True)
class ParamsV1:
    """New-style payload: local and shared roots plus a backslash-delimited chain."""

    version: ClassVar[int] = 1

    package: str
    path_local_root: str
    path_shared_root: str
    path_directory: str

    def root_for(self, perspective: str) -> str:
        return self.path_shared_root if _is_client(perspective) else self.path_local_root

    def segments(self) -> list[str]:
        return [part for part in self.path_directory.split("\\") if part]

    def as_dict(self) -> dict[str, str]:
        return {
            "package": self.package,
            "Path_Local_Root": self.path_local_root,
            "Path_Shared_Root": self.path_shared_root,
            "Path_Directory": self.path_directory,
        }


CommandParams = ParamsV0 | ParamsV1


class BroadcastVerb(str, Enum):
    SHUTDOWN = "shutdown"
    READ_CONFIG = "readconfig"


@dataclass(frozen=True, slots=True)
class BroadcastCommand:
    """Control message addressed to a list of manager names."""

    machines: tuple[str, ...]
    command: str

    @property
    def verb(self) -> BroadcastVerb | None:
        try:
            return BroadcastVerb(self.command.strip().lower())
        except ValueError:
            return None

    def applies_to(self, manager_name: str) -> bool:
        wanted = manager_name.strip().casefold()
        return any(machine.strip().casefold() == wanted for machine in self.machines)


def parse_command_xml(text: str) -> CommandParams:
    """Convert a task payload into typed command parameters.

    Example payload::

        <root>
          <package>264</package>
          <Path_Local_Root>F:\\DataPkgs</Path_Local_Root>
          <Path_Shared_Root>\\\\host\\DataPkgs\\</Path_Shared_Root>
          <Path_Folder>2011\\Public\\264_Example</Path_Folder>
        </root>

    A ``Path_Local_Root`` element selects the new-style layout, a ``local``
    element the old-style one; neither is an error.
    """

    try:
        root = ElementTree.fromstring(text)
    except (ElementTree.ParseError, DefusedXmlException) as error:
        raise CommandXmlError(f"Malformed command XML: {error}") from error

    package = _find_text(root, "package") or ""
    if _find(root, "Path_Local_Root") is not None:
        return ParamsV1(
            package=package,
            path_local_root=_find_text(root, "Path_Local_Root") or "",
            path_shared_root=_find_text(root, "Path_Shared_Root") or "",
            path_directory=_find_text(root, "Path_Folder") or "",
        )
    if _find(root, "local") is not None:
        return ParamsV0(
            package=package,
            local=_find_text(root, "local") or "",
            share=_find_text(root, "share") or "",
            year=_find_text(root, "year") or "",
            team=_find_text(root, "team") or "",
            directory=_find_text(root, "folder") or "",
        )
    raise CommandXmlError(
        "Unrecognized XML format; should contain node Path_Local_Root or node local",
    )


def parse_broadcast_xml(text: str) -> BroadcastCommand:
    """Parse ``<Managers><Machine>..</Machine></Managers><Message>..</Message>``."""

    root = _parse_fragment(text)
    machines: list[str] = []
    for managers in root.iter("Managers"):
        machines.extend((child.text or "").strip() for child in managers)

    command = _find_text(root, "Message")
    if command is None:
        raise BroadcastXmlError("Broadcast message has no Message element")
    return BroadcastCommand(
        machines=tuple(machine for machine in machines if machine),
        command=command.strip(),
    )


def get_param(params: Mapping[str, str], name: str) -> str:
    """Case-insensitive lookup in a flat parameter map; empty string if absent."""

    if name in params:
        return params[name]
    wanted = name.casefold()
    for key, value in params.items():
        if key.casefold() == wanted:
            return value
    return ""


def _parse_fragment(text: str) -> ET.Element:
    try:
        return ElementTree.fromstring(text)
    except DefusedXmlException as error:
        raise BroadcastXmlError(f"Forbidden construct in broadcast XML: {error}") from error
    except ElementTree.ParseError as error:
        # Broadcasts are often sent as sibling elements without a document root.
        try:
            return ElementTree.fromstring(f"<Broadcast>{text}</Broadcast>")
        except (ElementTree.ParseError, DefusedXmlException):
            raise BroadcastXmlError(
                f"Exception while parsing broadcast string: {error}",
            ) from error


def _find(root: ET.Element, tag: str) -> ET.Element | None:
    return next(root.iter(tag), None)


def _find_text(root: ET.Element, tag: str) -> str | None:
    element = _find(root, tag)
    if element is None:
        return None
    return (element.text or "").strip()


def _is_client(perspective: str) -> bool:
    return perspective.strip().lower() == CLIENT_PERSPECTIVE


def build_command_xml(
    *,
    package: str,
    local_root: str,
    shared_root: str,
    directory: str,
) -> str:
    """Render a new-style task payload."""

    root = ET.Element("root")
    for tag, value in (
        ("package", package),
        ("Path_Local_Root", local_root),
        ("Path_Shared_Root", shared_root),
        ("Path_Folder", directory),
    ):
        ET.SubElement(root, tag).text = value
    return ET.tostring(root, encoding="unicode")


def build_broadcast_xml(*, machines: tuple[str, ...], command: str) -> str:
    root = ET.Element("Broadcast")
    managers = ET.SubElement(root, "Managers")
    for machine in machines:
        ET.SubElement(managers, "Manager").text = machine
    ET.SubElement(root, "Message").text = command
    return ET.tostring(root, encoding="unicode")
