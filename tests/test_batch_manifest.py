# ============================================================================
# test_batch_manifest.py -- Tests for the batch manifest resolver
# ============================================================================
#
# COVERS:
#   TestIssueKeys        -- key normalization and issue key properties
#   TestParseBatch       -- reading batch.xml, and every way it can be bad
#   TestResolve          -- mapping caller keys to skip directories
#   TestWriteBatchXml    -- the rewritten manifest keeps the same shape
#
# RUN:
#   python -m pytest tests/test_batch_manifest.py -v
#
# INTERNET ACCESS: NONE
# ============================================================================

import os

import pytest
from lxml import etree

import sys as _sys, os as _os
_sys.path.insert(0, _os.path.dirname(__file__))
from conftest import NDNP_NS, batch_xml, make_file

from remove_issues.core.batch_manifest import (
    BatchManifest,
    Issue,
    Reel,
    is_under,
    normalize_issue_key,
    parse_batch,
    resolve,
    write_batch_xml,
)
from remove_issues.core.exceptions import (
    DuplicateIssueKeyError,
    EmptyManifestError,
    MissingIssueDirectoryError,
    ParseError,
    RemoveIssuesError,
    UnknownKeyError,
)

THREE_ISSUES = [
    ("sn83045462", "1900-01-01", "01", "sn83045462/print/1900010101/1900010101.xml"),
    ("sn83045462", "1900-01-02", "01", "sn83045462/print/1900010201/1900010201.xml"),
    ("sn83045462", "1900-01-02", "02", "sn83045462/print/1900010202/1900010202.xml"),
]
REELS = [
    ("00279557971", "reels/00279557971/00279557971.xml"),
    ("00279557983", "reels/00279557983/00279557983.xml"),
]


def _write(tmp_path, text, name="batch.xml"):
    path = tmp_path / "data" / name
    make_file(path, text.encode("utf-8"))
    return str(path)


class TestIssueKeys:

    def test_hyphens_underscores_and_slashes_are_ignored(self):
        expected = "sn1234520200101"
        assert normalize_issue_key("sn12345/2020-01-01") == expected
        assert normalize_issue_key("sn12345/20200101") == expected
        assert normalize_issue_key("sn12345-20200101") == expected
        assert normalize_issue_key("sn12345_2020_01_01") == expected

    def test_surrounding_whitespace_is_ignored(self):
        assert normalize_issue_key("  sn12345/20200101\n") == "sn1234520200101"

    def test_issue_key_includes_edition(self):
        issue = Issue("sn12345", "2020-01-01", "02", "a/b/c.xml")
        assert issue.key == "sn123452020010102"
        assert issue.short_key == "sn1234520200101"

    def test_directory_strips_last_segment(self):
        issue = Issue("sn1", "2020-01-01", "01", "sn1/print/2020010101/2020010101.xml")
        assert issue.directory == "sn1/print/2020010101"

    def test_directory_empty_when_path_has_no_folder(self):
        assert Issue("sn1", "2020-01-01", "01", "issue.xml").directory == ""


class TestParseBatch:

    def test_reads_batch_attributes_issues_and_reels(self, tmp_path):
        path = _write(tmp_path, batch_xml(THREE_ISSUES, REELS, name="batch_x_ver01",
                                          awardee="x", award_year="2019"))
        manifest = parse_batch(path)

        assert manifest.name == "batch_x_ver01"
        assert manifest.awardee == "x"
        assert manifest.award_year == "2019"
        assert [i.issue_date for i in manifest.issues] == [
            "1900-01-01", "1900-01-02", "1900-01-02",
        ]
        assert manifest.issues[0].path == THREE_ISSUES[0][3]
        assert manifest.reels == [Reel("00279557971", REELS[0][1]),
                                  Reel("00279557983", REELS[1][1])]

    def test_issue_path_whitespace_is_trimmed(self, tmp_path):
        text = batch_xml([("sn1", "2020-01-01", "01", "\n    a/b.xml\n  ")])
        manifest = parse_batch(_write(tmp_path, text))
        assert manifest.issues[0].path == "a/b.xml"

    def test_missing_file_is_parse_error(self, tmp_path):
        with pytest.raises(ParseError) as exc:
            parse_batch(str(tmp_path / "nope.xml"))
        assert exc.value.error_code == "MAN-001"

    def test_malformed_xml_is_parse_error(self, tmp_path):
        path = _write(tmp_path, "<batch xmlns='http://www.loc.gov/ndnp'><issue>")
        with pytest.raises(ParseError):
            parse_batch(path)

    def test_wrong_root_element_is_parse_error(self, tmp_path):
        path = _write(tmp_path, f'<reel xmlns="{NDNP_NS}" reelNumber="1">x</reel>')
        with pytest.raises(ParseError):
            parse_batch(path)

    def test_zero_issues_is_empty_manifest_error(self, tmp_path):
        path = _write(tmp_path, batch_xml([], REELS))
        with pytest.raises(EmptyManifestError) as exc:
            parse_batch(path)
        assert exc.value.error_code == "MAN-002"

    def test_issues_outside_ndnp_namespace_do_not_count(self, tmp_path):
        text = (
            f'<batch xmlns="{NDNP_NS}" name="b" awardee="a" awardYear="2020">'
            '<issue xmlns="urn:other" lccn="sn1" issueDate="2020-01-01" '
            'editionOrder="01">a/b.xml</issue></batch>'
        )
        with pytest.raises(EmptyManifestError):
            parse_batch(_write(tmp_path, text))

    def test_duplicate_issue_key_is_rejected(self, tmp_path):
        text = batch_xml([
            ("sn1", "2020-01-01", "01", "a/1.xml"),
            ("sn1", "20200101", "01", "b/1.xml"),
        ])
        with pytest.raises(DuplicateIssueKeyError) as exc:
            parse_batch(_write(tmp_path, text))
        assert isinstance(exc.value, ParseError)
        assert exc.value.key == "sn12020010101"


class TestResolve:

    def test_removes_matching_issue_and_keeps_order(self, tmp_path):
        path = _write(tmp_path, batch_xml(THREE_ISSUES, REELS))
        manifest, skip_dirs = resolve(path, ["sn83045462/1900-01-02-01"])

        assert [(i.issue_date, i.edition_order) for i in manifest.issues] == [
            ("1900-01-01", "01"), ("1900-01-02", "02"),
        ]
        data_dir = os.path.dirname(path)
        assert skip_dirs == frozenset({
            os.path.join(data_dir, "sn83045462", "print", "1900010201"),
        })

    def test_reels_are_never_touched(self, tmp_path):
        path = _write(tmp_path, batch_xml(THREE_ISSUES, REELS))
        original = parse_batch(path)
        manifest, _ = resolve(path, ["sn83045462/1900010101", "sn83045462/1900010202"])
        assert manifest.reels == original.reels
        assert len(manifest.issues) == 1

    def test_key_without_edition_means_edition_01(self, tmp_path):
        path = _write(tmp_path, batch_xml(THREE_ISSUES, REELS))
        manifest, skip_dirs = resolve(path, ["sn83045462-19000102"])
        assert [i.edition_order for i in manifest.issues if i.issue_date == "1900-01-02"] == ["02"]
        assert len(skip_dirs) == 1

    def test_unknown_key_fails_fast_naming_the_key(self, tmp_path):
        path = _write(tmp_path, batch_xml(THREE_ISSUES, REELS))
        with pytest.raises(UnknownKeyError) as exc:
            resolve(path, ["sn83045462/1900-01-01", "sn99999999/1900-01-01", "bogus"])
        assert exc.value.key == "sn99999999/1900-01-01"
        assert "sn99999999/1900-01-01" in str(exc.value)
        assert isinstance(exc.value, RemoveIssuesError)

    def test_unknown_key_touches_nothing_on_disk(self, tmp_path):
        path = _write(tmp_path, batch_xml(THREE_ISSUES, REELS))
        before = sorted(p for p in tmp_path.rglob("*"))
        with pytest.raises(UnknownKeyError):
            resolve(path, ["nope"])
        assert sorted(p for p in tmp_path.rglob("*")) == before

    def test_repeated_key_yields_one_skip_dir(self, tmp_path):
        path = _write(tmp_path, batch_xml(THREE_ISSUES, REELS))
        manifest, skip_dirs = resolve(path, ["sn83045462/1900-01-01", "sn83045462/19000101"])
        assert len(skip_dirs) == 1
        assert len(manifest.issues) == 2

    def test_data_dir_override_anchors_skip_dirs(self, tmp_path):
        path = _write(tmp_path, batch_xml(THREE_ISSUES, REELS))
        _, skip_dirs = resolve(path, ["sn83045462/19000101"], data_dir=str(tmp_path))
        assert skip_dirs == frozenset({
            os.path.join(str(tmp_path), "sn83045462", "print", "1900010101"),
        })

    def test_issue_folder_found_at_batch_root(self, tmp_path):
        path = _write(tmp_path, batch_xml(THREE_ISSUES, REELS))
        (tmp_path / "sn83045462" / "print" / "1900010101").mkdir(parents=True)
        _, skip_dirs = resolve(path, ["sn83045462/19000101"], batch_root=str(tmp_path))
        assert skip_dirs == frozenset({
            os.path.join(str(tmp_path), "sn83045462", "print", "1900010101"),
        })

    def test_data_folder_wins_over_batch_root(self, tmp_path):
        path = _write(tmp_path, batch_xml(THREE_ISSUES, REELS))
        (tmp_path / "sn83045462" / "print" / "1900010101").mkdir(parents=True)
        (tmp_path / "data" / "sn83045462" / "print" / "1900010101").mkdir(parents=True)
        _, skip_dirs = resolve(path, ["sn83045462/19000101"], batch_root=str(tmp_path))
        assert skip_dirs == frozenset({
            os.path.join(str(tmp_path), "data", "sn83045462", "print", "1900010101"),
        })

    def test_missing_issue_folder_is_fatal_when_required(self, tmp_path):
        path = _write(tmp_path, batch_xml(THREE_ISSUES, REELS))
        with pytest.raises(MissingIssueDirectoryError) as exc:
            resolve(path, ["sn83045462/19000101"], batch_root=str(tmp_path),
                    require_dirs=True)
        assert exc.value.key == "sn83045462/19000101"
        assert exc.value.error_code == "MAN-005"
        assert exc.value.path == os.path.join(
            str(tmp_path), "data", "sn83045462", "print", "1900010101")

    def test_issue_without_directory_cannot_be_skipped(self, tmp_path):
        path = _write(tmp_path, batch_xml([("sn1", "2020-01-01", "01", "issue.xml")]))
        with pytest.raises(ParseError):
            resolve(path, ["sn1/2020-01-01"])

    def test_source_manifest_is_not_modified(self, tmp_path):
        text = batch_xml(THREE_ISSUES, REELS)
        path = _write(tmp_path, text)
        resolve(path, ["sn83045462/19000101"])
        with open(path, encoding="utf-8") as f:
            assert f.read() == text


class TestWriteBatchXml:

    def test_rewritten_manifest_has_same_shape(self, tmp_path):
        src = _write(tmp_path, batch_xml(THREE_ISSUES, REELS))
        manifest, _ = resolve(src, ["sn83045462/19000101"])
        out = tmp_path / "dest" / "data" / "batch.xml"
        write_batch_xml(manifest, str(out))

        root = etree.parse(str(out)).getroot()
        assert root.tag == f"{{{NDNP_NS}}}batch"
        assert root.nsmap.get(None) == NDNP_NS
        assert root.get("name") == "batch_test_ver01"
        assert root.get("awardee") == "test"
        assert root.get("awardYear") == "2020"

        issues = root.findall(f"{{{NDNP_NS}}}issue")
        assert [(e.get("lccn"), e.get("issueDate"), e.get("editionOrder"), e.text)
                for e in issues] == [tuple(t) for t in THREE_ISSUES[1:]]
        reels = root.findall(f"{{{NDNP_NS}}}reel")
        assert [(e.get("reelNumber"), e.text) for e in reels] == [tuple(r) for r in REELS]

    def test_xml_declaration_is_written(self, tmp_path):
        out = tmp_path / "batch.xml"
        write_batch_xml(BatchManifest("b", "a", "2020", [Issue("sn1", "2020-01-01", "01", "a/b.xml")]),
                        str(out))
        assert out.read_bytes().startswith(b"<?xml version='1.0' encoding='UTF-8'?>")

    def test_extra_namespaces_and_attributes_survive(self, tmp_path):
        xsi = "http://www.w3.org/2001/XMLSchema-instance"
        text = batch_xml(
            THREE_ISSUES, REELS,
            root_extra=f' xmlns:xsi="{xsi}" xsi:schemaLocation="{NDNP_NS} batch.xsd"',
        )
        manifest, _ = resolve(_write(tmp_path, text), ["sn83045462/19000101"])
        out = tmp_path / "out.xml"
        write_batch_xml(manifest, str(out))

        root = etree.parse(str(out)).getroot()
        assert root.nsmap.get("xsi") == xsi
        assert root.get(f"{{{xsi}}}schemaLocation") == f"{NDNP_NS} batch.xsd"

    def test_rewritten_manifest_parses_back_identically(self, tmp_path):
        src = _write(tmp_path, batch_xml(THREE_ISSUES, REELS))
        manifest, _ = resolve(src, ["sn83045462/19000102"])
        out = tmp_path / "again" / "batch.xml"
        write_batch_xml(manifest, str(out))
        again = parse_batch(str(out))
        assert again.issues == manifest.issues
        assert again.reels == manifest.reels


class TestIsUnder:

    def test_prefix_match_on_path_boundaries_only(self, tmp_path):
        skip = os.path.join(str(tmp_path), "issues", "1")
        assert is_under(os.path.join(skip, "a.xml"), skip)
        assert is_under(skip, skip)
        assert not is_under(os.path.join(str(tmp_path), "issues", "10", "a.xml"), skip)
        assert not is_under(os.path.join(str(tmp_path), "issues", "1.xml"), skip)

    def test_trailing_separator_on_directory_is_ignored(self, tmp_path):
        skip = os.path.join(str(tmp_path), "x") + os.sep
        assert is_under(os.path.join(str(tmp_path), "x", "y"), skip)
