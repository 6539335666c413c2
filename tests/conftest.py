# ============================================================================
# conftest.py -- Shared Test Fixtures for the remove-issues Test Suite
# ============================================================================
#
# WHAT THIS FILE DOES:
#   Pytest automatically loads this file before any test runs.
#   It provides:
#     1. sys.path setup so "from remove_issues.core.X import Y" works
#        from any test without installing the package
#     2. Logging pointed at a throwaway folder, so test runs never write
#        into ./logs
#     3. Helpers that build small but realistic NDNP batch trees on disk
#
# INTERNET ACCESS: NONE
# ============================================================================

import sys
from pathlib import Path
from typing import Iterable, Tuple

import pytest

# -- sys.path setup --
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from remove_issues.monitoring.logger import initialize_logging  # noqa: E402

NDNP_NS = "http://www.loc.gov/ndnp"


@pytest.fixture(scope="session", autouse=True)
def _test_logging(tmp_path_factory):
    """Send every structured log line to a temp folder for the session."""
    initialize_logging(str(tmp_path_factory.mktemp("logs")))


# ============================================================================
# BATCH BUILDERS
# ============================================================================
#
# A batch.xml issue is (lccn, issueDate, editionOrder, path) and a reel is
# (reelNumber, path). Paths are relative to the data/ folder, the same as
# in real NDNP batches.
# ============================================================================

def batch_xml(
    issues: Iterable[Tuple[str, str, str, str]],
    reels: Iterable[Tuple[str, str]] = (),
    name: str = "batch_test_ver01",
    awardee: str = "test",
    award_year: str = "2020",
    root_extra: str = "",
) -> str:
    """Build the text of a batch.xml document."""
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<batch xmlns="{NDNP_NS}" name="{name}" awardee="{awardee}" '
        f'awardYear="{award_year}"{root_extra}>',
    ]
    for lccn, date, edition, path in issues:
        lines.append(
            f'  <issue lccn="{lccn}" issueDate="{date}" '
            f'editionOrder="{edition}">{path}</issue>'
        )
    for number, path in reels:
        lines.append(f'  <reel reelNumber="{number}">{path}</reel>')
    lines.append("</batch>")
    return "\n".join(lines) + "\n"


def make_file(path: Path, content: bytes = b"content") -> Path:
    """Create a file (and its folders) with the given bytes."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


def relative_files(root: Path) -> set:
    """Every file under root, as forward-slash relative paths."""
    return {
        p.relative_to(root).as_posix()
        for p in root.rglob("*")
        if p.is_file()
    }


@pytest.fixture
def two_issue_batch(tmp_path):
    """
    A source batch with two issues and one reel:

      data/batch.xml
      data/batch_1.xml                    (validated copy, never copied)
      data/issues/2020-01-01/...          (sn001, 2020-01-01)
      data/issues/2020-01-02/...          (sn002, 2020-01-02)
      data/reels/00001/00001.xml
    """
    source = tmp_path / "source"
    data = source / "data"
    xml = batch_xml(
        issues=[
            ("sn001", "2020-01-01", "01", "issues/2020-01-01/2020-01-01.xml"),
            ("sn002", "2020-01-02", "01", "issues/2020-01-02/2020-01-02.xml"),
        ],
        reels=[("00001", "reels/00001/00001.xml")],
    )
    make_file(data / "batch.xml", xml.encode("utf-8"))
    make_file(data / "batch_1.xml", xml.encode("utf-8"))

    for day in ("2020-01-01", "2020-01-02"):
        issue_dir = data / "issues" / day
        make_file(issue_dir / f"{day}.xml", f"<issue>{day}</issue>".encode())
        make_file(issue_dir / "0001.xml", f"<page>{day}</page>".encode())
        make_file(issue_dir / "0001.jp2", b"\x00\x00\x00\x0cjP  " + day.encode())
        make_file(issue_dir / "0001.pdf", b"%PDF-1.4 " + day.encode())
        make_file(issue_dir / "0001.tif", b"II*\x00" + day.encode())
        make_file(issue_dir / "0001_1.xml", b"<validated/>")

    make_file(data / "reels" / "00001" / "00001.xml", b"<reel/>")
    return source
