"""
Proxy bundle customization.

A bundle is a zip archive with an ``apiproxy/`` tree. ``customize`` extracts
it, applies transforms to files under ``apiproxy/`` and repackages the result.
"""
import logging
import os
import tempfile
import xml.etree.ElementTree as ET
import zipfile
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol

from .errors import ArtifactError

logger = logging.getLogger(__name__)

PROXIES_DIR = os.path.join(os.path.dirname(__file__), "proxies")

VIRTUAL_HOST_ANCHOR = "<VirtualHost>default</VirtualHost>"
VIRTUAL_HOST_FORMAT = "<VirtualHost>{}</VirtualHost>"


class Transform(Protocol):
    path: str

    def apply(self, text: str) -> str:
        ...


@dataclass
class ReplaceFirst:
    """Replace the first occurrence of an anchor; a missing anchor is an error"""

    path: str
    anchor: str
    replacement: str

    def apply(self, text: str) -> str:
        if self.anchor not in text:
            raise ArtifactError(f"anchor {self.anchor!r} not found in {self.path}")
        return text.replace(self.anchor, self.replacement, 1)


@dataclass
class CalloutProperties:
    """Upsert named properties in a callout policy's <Properties> list"""

    path: str
    properties: Dict[str, str]

    def apply(self, text: str) -> str:
        try:
            root = ET.fromstring(text)
        except ET.ParseError as exc:
            raise ArtifactError(f"parsing {self.path}: {exc}") from exc

        container = root.find("Properties")
        if container is None:
            container = ET.SubElement(root, "Properties")

        for name, value in self.properties.items():
            for prop in container.findall("Property"):
                if prop.get("name") == name:
                    prop.text = value
                    break
            else:
                prop = ET.SubElement(container, "Property", {"name": name})
                prop.text = value

        ET.indent(root, space="  ")
        body = ET.tostring(root, encoding="unicode")
        return '<?xml version="1.0" encoding="UTF-8"?>\n' + body + "\n"


def virtual_hosts(hosts: str, path: str = "proxies/default.xml") -> ReplaceFirst:
    """Replace the default virtual host with one entry per comma-separated host"""
    replacement = "".join(
        VIRTUAL_HOST_FORMAT.format(host.strip()) for host in hosts.split(",") if host.strip()
    )
    if not replacement:
        raise ArtifactError(f"no virtual hosts in {hosts!r}")
    return ReplaceFirst(path, VIRTUAL_HOST_ANCHOR, replacement)


def restore_asset(name: str, dest_dir: str) -> str:
    """Zip the bundled proxy template ``name`` into dest_dir and return the archive path"""
    source = os.path.join(PROXIES_DIR, name)
    if not os.path.isdir(os.path.join(source, "apiproxy")):
        raise ArtifactError(f"unknown proxy template {name}")
    archive = os.path.join(dest_dir, f"{name}.zip")
    zip_dir(source, archive)
    return archive


def zip_dir(source: str, archive: str) -> None:
    with zipfile.ZipFile(archive, "w", zipfile.ZIP_DEFLATED) as handle:
        for dirpath, dirnames, filenames in os.walk(source):
            dirnames.sort()
            for filename in sorted(filenames):
                full_path = os.path.join(dirpath, filename)
                arcname = os.path.relpath(full_path, source).replace(os.sep, "/")
                handle.write(full_path, arcname)


def customize(
    template_archive: str,
    transforms: Optional[List[Transform]],
    work_dir: str,
    output_name: str = "customized.zip",
) -> str:
    """
    Apply transforms to a bundle and return the path of the repackaged archive.

    With no transforms the template archive itself is returned. All scratch
    files are written under work_dir, which the caller owns and removes.
    """
    if not transforms:
        return template_archive

    extract_dir = tempfile.mkdtemp(prefix="proxy", dir=work_dir)
    try:
        with zipfile.ZipFile(template_archive) as handle:
            handle.extractall(extract_dir)
    except (OSError, zipfile.BadZipFile) as exc:
        raise ArtifactError(f"extracting {template_archive}: {exc}") from exc

    proxy_dir = os.path.join(extract_dir, "apiproxy")
    for transform in transforms:
        target = os.path.join(proxy_dir, transform.path)
        if not os.path.isfile(target):
            raise ArtifactError(f"{transform.path} not found in {os.path.basename(template_archive)}")
        with open(target, "r", encoding="utf-8") as handle:
            text = transform.apply(handle.read())
        with open(target, "w", encoding="utf-8") as handle:
            handle.write(text)
        logger.debug(f"applied {type(transform).__name__} to {transform.path}")

    customized = os.path.join(work_dir, output_name)
    zip_dir(extract_dir, customized)
    logger.info(f"customized {os.path.basename(template_archive)} -> {customized}")
    return customized
