import glob
import logging
import os
import xml.etree.ElementTree as ET
from collections.abc import Mapping

from revbuild.exceptions import ProjectNotFoundError

PROJECT_EXTENSION = ".csproj"


def find_project_file(locator: str) -> str:
    """A locator names either a project file or a folder holding one."""
    path = os.path.abspath(locator)
    if path.endswith(PROJECT_EXTENSION):
        if not os.path.isfile(path):
            raise ProjectNotFoundError(locator)
        return path
    if os.path.isdir(path):
        candidates = sorted(glob.glob(os.path.join(path, f"*{PROJECT_EXTENSION}")))
        if candidates:
            return candidates[0]
    raise ProjectNotFoundError(locator)


def _namespace(root: ET.Element) -> str:
    if root.tag.startswith("{"):
        return root.tag[: root.tag.index("}") + 1]
    return ""


def load(path: str) -> ET.ElementTree:
    if not os.path.exists(path):
        return ET.ElementTree(ET.Element("Project"))
    parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True))
    tree = ET.parse(path, parser=parser)
    ns = _namespace(tree.getroot())
    if ns:
        ET.register_namespace("", ns[1:-1])
    return tree


def save(tree: ET.ElementTree, path: str) -> None:
    ET.indent(tree, space="  ")
    tree.write(path, encoding="utf-8", xml_declaration=True)


def unconditioned_group(root: ET.Element, tag: str) -> ET.Element:
    ns = _namespace(root)
    for group in root.findall(f"{ns}{tag}"):
        if not group.get("Condition", "").strip():
            return group
    return ET.SubElement(root, f"{ns}{tag}")


def set_properties(path: str, properties: Mapping[str, str]) -> None:
    """Upsert properties into the first unconditioned PropertyGroup,
    leaving everything else in the file untouched."""
    tree = load(path)
    root = tree.getroot()
    ns = _namespace(root)
    group = unconditioned_group(root, "PropertyGroup")
    for name, value in properties.items():
        element = group.find(f"{ns}{name}")
        if element is None:
            element = ET.SubElement(group, f"{ns}{name}")
        element.text = value
    save(tree, path)
    logging.debug(f"patched {path}: {dict(properties)}")


def upsert_package_reference(
    path: str, include: str, version: str, aliases: str | None = None
) -> None:
    tree = load(path)
    root = tree.getroot()
    ns = _namespace(root)
    for reference in root.iter(f"{ns}PackageReference"):
        if reference.get("Include") == include:
            break
    else:
        reference = ET.SubElement(
            unconditioned_group(root, "ItemGroup"),
            f"{ns}PackageReference",
            {"Include": include},
        )
    reference.set("Version", version)
    if aliases:
        reference.set("Aliases", aliases)
    save(tree, path)


def read_properties(path: str) -> dict[str, str]:
    tree = load(path)
    root = tree.getroot()
    ns = _namespace(root)
    properties = {}
    for group in root.findall(f"{ns}PropertyGroup"):
        for element in group:
            if not isinstance(element.tag, str):
                continue
            properties[element.tag.removeprefix(ns)] = element.text or ""
    return properties
