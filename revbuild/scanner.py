"""Lightweight scanner for BenchmarkTemplate attributes in C# sources.

This is not a C# parser. It masks comments and string literals, finds
the attribute names that can only refer to the BenchmarkTemplate
attribute, and reads string literal arguments from the attribute
argument list:

    [BenchmarkTemplate("0123abcd", ProjectPath = "../Lib", PackOption = "-p:X=1")]
"""

import logging
import os
import re
from collections.abc import Iterator
from dataclasses import dataclass

from revbuild.exceptions import MalformedDirectiveError
from revbuild.models import RevisionRequest
from revbuild.utils.cancellation import CancellationToken

MARKER = b"BenchmarkTemplate"
SOURCE_EXTENSION = ".cs"
SKIPPED_DIRS = {"bin", "obj", ".git", ".vs"}

ATTRIBUTE_RE = re.compile(
    r"(?<![\w.:])"
    r"(?:global::Pcysl5edgo\.GitRevisionBuilder\.BenchmarkDotNet\.Attributes\."
    r"|Pcysl5edgo\.GitRevisionBuilder\.BenchmarkDotNet\.Attributes\."
    r"|GitRevisionBuilder\.BenchmarkDotNet\.Attributes\."
    r"|BenchmarkDotNet\.Attributes\."
    r"|Attributes\.)?"
    r"BenchmarkTemplate(?:Attribute)?\b"
)
# an attribute is preceded by "[", "," or a target specifier like "method:"
ATTRIBUTE_CONTEXT = ("[", ",", ":")


@dataclass(frozen=True)
class Token:
    kind: str  # "string", "expr", "word", "punct"
    value: str
    start: int


ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", "\\": "\\", '"': '"', "'": "'"}
LITERAL_PREFIX_RE = re.compile(r"[@$]{1,2}\"")
WORD_RE = re.compile(r"[\w.]+")


def _is_literal_start(text: str, i: int) -> bool:
    return text[i] in "\"'" or bool(LITERAL_PREFIX_RE.match(text, i))


def _comment_end(text: str, i: int) -> int | None:
    if text.startswith("//", i):
        end = text.find("\n", i)
        return len(text) if end < 0 else end
    if text.startswith("/*", i):
        end = text.find("*/", i + 2)
        return len(text) if end < 0 else end + 2
    return None


def _literal_end(text: str, start: int) -> tuple[int, str | None]:
    """Returns the index after the literal at start and its value.
    The value is None for literals that are not plain string constants."""
    verbatim = False
    interpolated = False
    i = start
    while text[i] in "@$":
        verbatim = verbatim or text[i] == "@"
        interpolated = interpolated or text[i] == "$"
        i += 1
    if text[i] == "'":
        escaped = i + 1 < len(text) and text[i + 1] == "\\"
        end = text.find("'", i + 3 if escaped else i + 2)
        return (len(text) if end < 0 else end + 1), None
    i += 1
    chars: list[str] = []
    while i < len(text):
        c = text[i]
        if verbatim:
            if c == '"':
                if text.startswith('""', i):
                    chars.append('"')
                    i += 2
                    continue
                return i + 1, None if interpolated else "".join(chars)
        elif c == "\\" and i + 1 < len(text):
            chars.append(ESCAPES.get(text[i + 1], text[i + 1]))
            i += 2
            continue
        elif c in ('"', "\n"):
            return i + 1, None if interpolated else "".join(chars)
        chars.append(c)
        i += 1
    return len(text), None


def mask(text: str) -> str:
    """Blank out comments and literals, keeping offsets and newlines."""
    out = list(text)
    i = 0
    while i < len(text):
        end = _comment_end(text, i)
        if end is None and _is_literal_start(text, i):
            end, _ = _literal_end(text, i)
        if end is None:
            i += 1
            continue
        for j in range(i, end):
            if out[j] != "\n":
                out[j] = " "
        i = end
    return "".join(out)


def _tokens(text: str, pos: int) -> Iterator[Token]:
    i = pos
    while i < len(text):
        if (end := _comment_end(text, i)) is not None:
            i = end
        elif _is_literal_start(text, i):
            end, value = _literal_end(text, i)
            yield Token("expr" if value is None else "string", value or "", i)
            i = end
        elif text[i].isspace():
            i += 1
        elif text[i].isalnum() or text[i] == "_":
            m = WORD_RE.match(text, i)
            assert m is not None
            yield Token("word", m.group(0), i)
            i = m.end()
        else:
            yield Token("punct", text[i], i)
            i += 1


def _arguments(text: str, pos: int) -> list[list[Token]] | None:
    """Split the argument list opening at pos into top level arguments."""
    tokens = _tokens(text, pos)
    first = next(tokens, None)
    if first is None or first.value != "(":
        return None
    args: list[list[Token]] = [[]]
    depth = 0
    for token in tokens:
        if token.kind == "punct" and token.value in "([{":
            depth += 1
        elif token.kind == "punct" and token.value in ")]}":
            if depth == 0:
                break
            depth -= 1
        elif token.kind == "punct" and token.value == "," and depth == 0:
            args.append([])
            continue
        args[-1].append(token)
    return [a for a in args if a]


def _literal(tokens: list[Token]) -> str | None:
    if len(tokens) == 1 and tokens[0].kind == "string":
        return tokens[0].value
    return None


def _preceding_char(masked: str, pos: int) -> str:
    i = pos - 1
    while i >= 0 and masked[i].isspace():
        i -= 1
    return masked[i] if i >= 0 else ""


def parse_directives(
    text: str, path: str, project_dir: str, default_project: str
) -> list[RevisionRequest]:
    masked = mask(text)
    requests = []
    for found in ATTRIBUTE_RE.finditer(masked):
        if _preceding_char(masked, found.start()) not in ATTRIBUTE_CONTEXT:
            continue
        line = masked.count("\n", 0, found.start()) + 1
        args = _arguments(text, found.end())
        if not args:
            continue

        commit_id = None
        project_path = None
        pack_option = None
        for arg in args:
            if len(arg) > 2 and arg[0].kind == "word" and arg[1].value == "=":
                match arg[0].value:
                    case "ProjectPath":
                        project_path = _literal(arg[2:])
                    case "PackOption":
                        pack_option = _literal(arg[2:])
                continue
            if len(arg) > 2 and arg[0].kind == "word" and arg[1].value == ":":
                arg = arg[2:]
            if (value := _literal(arg)) is not None:
                commit_id = value

        if commit_id is None or not commit_id.strip():
            raise MalformedDirectiveError(
                path, line, "BenchmarkTemplate requires a non-empty commit id"
            )
        if project_path:
            # msbuild style paths use backslashes
            project_path = project_path.replace("\\", "/")
            project = os.path.normpath(os.path.join(project_dir, project_path))
        else:
            project = default_project
        logging.debug(f"directive at {path}:{line}: {commit_id} for {project}")
        requests.append(
            RevisionRequest(
                project_locator=project,
                commit_id=commit_id.strip(),
                pack_option=pack_option or None,
            )
        )
    return requests


def scan_file(
    path: str,
    project_dir: str,
    default_project: str,
    token: CancellationToken | None = None,
) -> list[RevisionRequest]:
    if token is not None and token.cancelled:
        return []
    try:
        with open(path, "rb") as f:
            content = f.read()
    except FileNotFoundError:
        return []
    if MARKER not in content:
        return []
    logging.info(f"scanning {path}")
    text = content.decode("utf-8-sig", errors="replace")
    try:
        return parse_directives(text, path, project_dir, default_project)
    except MalformedDirectiveError as e:
        if token is not None:
            token.cancel(str(e))
        raise


def find_sources(project_dir: str) -> list[str]:
    sources = []
    for root, dirs, files in os.walk(project_dir):
        dirs[:] = sorted(d for d in dirs if d not in SKIPPED_DIRS)
        sources.extend(
            os.path.join(root, f) for f in sorted(files) if f.endswith(SOURCE_EXTENSION)
        )
    return sources
