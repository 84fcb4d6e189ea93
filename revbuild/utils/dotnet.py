import logging
import shlex
import subprocess
from collections import deque

OUTPUT_TAIL_LINES = 20


class DotnetError(Exception):
    pass


def _run(cmd: list[str], wd: str) -> None:
    logging.debug(f"running {shlex.join(cmd)} in {wd}")
    tail: deque[str] = deque(maxlen=OUTPUT_TAIL_LINES)
    try:
        with subprocess.Popen(
            cmd,
            cwd=wd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
        ) as proc:
            assert proc.stdout is not None
            for line in proc.stdout:
                line = line.rstrip()
                tail.append(line)
                logging.debug(line)
            returncode = proc.wait()
    except OSError as e:
        raise DotnetError(f"could not launch {cmd[0]}: {e}") from e
    if returncode != 0:
        output = "\n".join(tail)
        raise DotnetError(
            f"{shlex.join(cmd[:2])} exited with code {returncode}:\n{output}"
        )


def pack(
    project_dir: str,
    output_dir: str,
    version: str,
    configuration: str = "Release",
    option: str | None = None,
    dotnet: str = "dotnet",
) -> None:
    cmd = [
        dotnet,
        "pack",
        "--configuration",
        configuration,
        "--output",
        output_dir,
        f"-p:PackageVersion={version}",
    ]
    if option and option.strip():
        try:
            cmd += shlex.split(option)
        except ValueError as e:
            raise DotnetError(f"invalid pack option {option!r}: {e}") from e
    _run(cmd, project_dir)


def push(artifact: str, source: str, wd: str, dotnet: str = "dotnet") -> None:
    cmd = [dotnet, "nuget", "push", artifact, "--source", source, "--skip-duplicate"]
    _run(cmd, wd)
