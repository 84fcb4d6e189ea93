import os
from pathlib import Path

import pytest

from revbuild import scanner
from revbuild.exceptions import MalformedDirectiveError
from revbuild.models import RevisionRequest
from revbuild.utils.cancellation import CancellationToken

from .fixtures import Fixtures

fxt = Fixtures("scanner")

PROJECT_DIR = "/src/Sample.Benchmarks"
DEFAULT_PROJECT = "/src/Sample/Sample.csproj"


def parse(text: str) -> list[RevisionRequest]:
    return scanner.parse_directives(text, "Test.cs", PROJECT_DIR, DEFAULT_PROJECT)


def test_parse_fixture_directives():
    requests = parse(fxt.get("Benchmarks.cs"))

    assert requests == [
        RevisionRequest(project_locator=DEFAULT_PROJECT, commit_id="0123abcd"),
        RevisionRequest(
            project_locator="/src/Parser",
            commit_id="4567ef01",
            pack_option="-p:Optimize=true",
        ),
        RevisionRequest(project_locator="/src/Parser", commit_id="89abcdef"),
        RevisionRequest(project_locator=DEFAULT_PROJECT, commit_id="fedcba98"),
    ]


def test_comments_and_literals_are_ignored():
    assert parse(fxt.get("Ignored.cs")) == []


def test_malformed_directive_reports_location():
    with pytest.raises(MalformedDirectiveError) as e:
        parse(fxt.get("Malformed.cs"))

    assert e.value.line == 8
    assert e.value.path == "Test.cs"


def test_attribute_without_arguments_is_skipped():
    assert parse("[BenchmarkTemplate] void M() {}") == []
    assert parse("[BenchmarkTemplate()] void M() {}") == []


def test_named_arguments_only_is_malformed():
    with pytest.raises(MalformedDirectiveError):
        parse('[BenchmarkTemplate(ProjectPath = "../Lib")] void M() {}')


def test_commit_id_is_trimmed():
    (request,) = parse('[BenchmarkTemplate(" abc ")] void M() {}')

    assert request.commit_id == "abc"


def test_escaped_literal_value():
    (request,) = parse(
        '[BenchmarkTemplate("abc", PackOption = "-p:Name=\\"x y\\"")] void M() {}'
    )

    assert request.pack_option == '-p:Name="x y"'


def test_empty_pack_option_is_none():
    (request,) = parse('[BenchmarkTemplate("abc", PackOption = "")] void M() {}')

    assert request.pack_option is None


def test_multiple_attributes_in_one_section():
    requests = parse('[BenchmarkTemplate("a"), BenchmarkTemplate("b")] void M() {}')

    assert [r.commit_id for r in requests] == ["a", "b"]


def test_unrelated_attribute_name_is_ignored():
    assert parse('[MyBenchmarkTemplate("a")] void M() {}') == []
    assert parse('[Other.BenchmarkTemplate("a")] void M() {}') == []


def test_mask_keeps_offsets_and_newlines():
    text = 'a /* x\ny */ "s" // c\nb'

    masked = scanner.mask(text)

    assert len(masked) == len(text)
    assert masked.count("\n") == 2
    assert masked.split() == ["a", "b"]


def test_scan_file_skips_files_without_marker(tmp_path: Path):
    source = tmp_path / "Plain.cs"
    source.write_text("class Plain {}\n")

    assert scanner.scan_file(str(source), str(tmp_path), DEFAULT_PROJECT) == []


def test_scan_file_missing_file(tmp_path: Path):
    missing = str(tmp_path / "Gone.cs")

    assert scanner.scan_file(missing, str(tmp_path), DEFAULT_PROJECT) == []


def test_scan_file_reads_bom_encoded_source(tmp_path: Path):
    source = tmp_path / "Bom.cs"
    source.write_bytes(
        b'\xef\xbb\xbf[BenchmarkTemplate("abc", ProjectPath = "Lib")] void M() {}'
    )

    (request,) = scanner.scan_file(str(source), str(tmp_path), DEFAULT_PROJECT)

    assert request.commit_id == "abc"
    assert request.project_locator == os.path.join(str(tmp_path), "Lib")


def test_scan_file_cancels_token_on_malformed_directive(tmp_path: Path):
    source = tmp_path / "Malformed.cs"
    source.write_text(fxt.get("Malformed.cs"))
    token = CancellationToken()

    with pytest.raises(MalformedDirectiveError):
        scanner.scan_file(str(source), str(tmp_path), DEFAULT_PROJECT, token=token)

    assert token.cancelled


def test_scan_file_after_cancellation_reads_nothing(tmp_path: Path):
    source = tmp_path / "Malformed.cs"
    source.write_text(fxt.get("Malformed.cs"))
    token = CancellationToken()
    token.cancel("test")

    assert (
        scanner.scan_file(str(source), str(tmp_path), DEFAULT_PROJECT, token=token)
        == []
    )


def test_find_sources_skips_build_output(tmp_path: Path):
    for rel in ("A.cs", "sub/B.cs", "bin/C.cs", "obj/Debug/D.cs", "notes.txt"):
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("")

    sources = scanner.find_sources(str(tmp_path))

    assert sources == [
        os.path.join(str(tmp_path), "A.cs"),
        os.path.join(str(tmp_path), "sub", "B.cs"),
    ]
