import logging
import os
import xml.etree.ElementTree as ET
from collections.abc import Iterable
from typing import Protocol

from revbuild.exceptions import PackError
from revbuild.models import artifact_file_name
from revbuild.utils import dotnet, msbuild
from revbuild.utils.config import BuildSettings


class Packager(Protocol):
    """This protocol defines what a session needs to turn a checked out
    project into an artifact file."""

    output_dir: str

    def artifact_path(self, name: str) -> str:
        pass

    def find_existing(self, name: str) -> str | None:
        pass

    def prepare(self, project_file: str, name: str) -> None:
        pass

    def pack(self, project_file: str, option: str | None) -> None:
        pass


class DotnetPackager:
    def __init__(
        self,
        settings: BuildSettings,
        output_dir: str,
        reuse_dirs: Iterable[str] = (),
    ):
        self.settings = settings
        self.output_dir = os.path.abspath(output_dir)
        # directories where a previously built artifact is as good as a new one
        self.reuse_dirs = [self.output_dir, *(os.path.abspath(d) for d in reuse_dirs)]

    def artifact_path(self, name: str) -> str:
        return os.path.join(
            self.output_dir, artifact_file_name(name, self.settings.package_version)
        )

    def find_existing(self, name: str) -> str | None:
        file_name = artifact_file_name(name, self.settings.package_version)
        for d in self.reuse_dirs:
            path = os.path.join(d, file_name)
            if os.path.isfile(path):
                return path
        return None

    def descriptor_path(self, project_file: str) -> str:
        project_dir = os.path.dirname(project_file)
        return os.path.join(project_dir, self.settings.descriptor_name)

    def prepare(self, project_file: str, name: str) -> None:
        descriptor = self.descriptor_path(project_file)
        try:
            msbuild.set_properties(
                descriptor,
                {
                    "AssemblyName": name,
                    "IsPackable": "True",
                    "PackageId": "$(AssemblyName)",
                    "PackageVersion": self.settings.package_version,
                    "PackageOutputPath": self.output_dir,
                },
            )
        except (OSError, ET.ParseError) as e:
            raise PackError(
                f"could not patch build descriptor {descriptor}: {e}"
            ) from e

    def pack(self, project_file: str, option: str | None) -> None:
        logging.info(f"packing {project_file}")
        try:
            dotnet.pack(
                os.path.dirname(project_file),
                self.output_dir,
                self.settings.package_version,
                configuration=self.settings.configuration,
                option=option,
                dotnet=self.settings.dotnet,
            )
        except dotnet.DotnetError as e:
            raise PackError(f"packing {project_file} failed: {e}") from e
