import logging
import os
import shutil
import xml.etree.ElementTree as ET
from collections.abc import Iterable
from typing import Protocol

from revbuild.exceptions import (
    PublishError,
    RegistrationError,
)
from revbuild.models import ArtifactDescriptor
from revbuild.utils import dotnet, msbuild


class Publisher(Protocol):
    def publish(self, artifact: ArtifactDescriptor) -> None:
        pass


class CopyPublisher:
    def __init__(self, destination: str):
        self.destination = destination

    def publish(self, artifact: ArtifactDescriptor) -> None:
        target = os.path.join(self.destination, artifact.file_name)
        if os.path.abspath(artifact.path) == os.path.abspath(target):
            logging.info(f"{artifact.file_name} is already in {self.destination}")
            return
        try:
            os.makedirs(self.destination, exist_ok=True)
            shutil.copy2(artifact.path, target)
        except OSError as e:
            raise PublishError(
                f"could not copy {artifact.path} to {target}: {e}"
            ) from e
        logging.info(f"published {artifact.file_name} to {self.destination}")


class NugetPushPublisher:
    def __init__(self, source: str, dotnet_binary: str = "dotnet"):
        self.source = source
        self.dotnet_binary = dotnet_binary

    def publish(self, artifact: ArtifactDescriptor) -> None:
        logging.info(f"pushing {artifact.file_name} to {self.source}")
        try:
            dotnet.push(
                artifact.path,
                self.source,
                os.path.dirname(artifact.path),
                dotnet=self.dotnet_binary,
            )
        except dotnet.DotnetError as e:
            raise PublishError(
                f"could not push {artifact.file_name} to {self.source}: {e}"
            ) from e


def register_package_references(
    project_file: str, artifacts: Iterable[ArtifactDescriptor]
) -> None:
    """Reference every published package from the consuming project,
    aliased by every revision identifier that requested it."""
    for artifact in sorted(artifacts, key=lambda a: a.logical_name):
        try:
            msbuild.upsert_package_reference(
                project_file,
                include=artifact.logical_name,
                version=artifact.version,
                aliases=artifact.aliases,
            )
        except (OSError, ET.ParseError) as e:
            raise RegistrationError(
                f"could not add {artifact.logical_name} to {project_file}: {e}"
            ) from e
        logging.info(f"referenced {artifact.logical_name} from {project_file}")
