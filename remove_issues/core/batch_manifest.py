# ============================================================================
# remove-issues -- Batch Manifest Resolver (remove_issues/core/batch_manifest.py)
# ============================================================================
#
# WHAT THIS FILE DOES (plain English):
#   Reads an NDNP batch manifest (data/batch.xml), works out which issue
#   directories must be left out of the new batch, and produces a new
#   manifest that lists only the issues that are kept.
#
#   A batch.xml looks like this:
#
#     <batch xmlns="http://www.loc.gov/ndnp" name="batch_foo_ver01"
#            awardee="foo" awardYear="2020">
#       <issue lccn="sn12345678" issueDate="1900-01-01"
#              editionOrder="01">sn12345678/print/1900010101/1900010101.xml</issue>
#       <reel reelNumber="00279557971">reels/00279557971/00279557971.xml</reel>
#     </batch>
#
#   Each issue is identified by its "issue key": LCCN + date + edition,
#   with hyphens, underscores and slashes removed. Callers can write a
#   key as "sn12345678/1900-01-01-01", "sn12345678-1900010101" or
#   "sn12345678_1900-01-01" -- they all mean the same issue. A key with
#   no edition order means edition 01.
#
# WHERE ISSUE FOLDERS LIVE:
#   Issue paths are relative. Most batches keep issues under data/ next
#   to batch.xml; some keep them at the batch root. resolve() looks under
#   data/ first, then under the batch root, and skips whichever exists.
#
# ALL OR NOTHING:
#   If ANY caller key is not in the manifest, resolve() raises before
#   looking at the rest. The same goes for an issue whose folder is not
#   on disk at all. The run stops before a single file is copied.
#
# DEPENDENCIES:
#   - lxml: namespace-aware parsing and pretty-printed serialization
# ============================================================================

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

import structlog
from lxml import etree

from remove_issues.core.exceptions import (
    DuplicateIssueKeyError,
    EmptyManifestError,
    MissingIssueDirectoryError,
    ParseError,
    UnknownKeyError,
)


NDNP_NS = "http://www.loc.gov/ndnp"

# Edition assumed when a caller key gives only LCCN + date
DEFAULT_EDITION = "01"

_BATCH_TAG = f"{{{NDNP_NS}}}batch"
_ISSUE_TAG = f"{{{NDNP_NS}}}issue"
_REEL_TAG = f"{{{NDNP_NS}}}reel"

# Root attributes modelled as dataclass fields; anything else is carried
# through as-is
_ROOT_ATTRS = ("name", "awardee", "awardYear")

logger = structlog.get_logger(__name__)


def normalize_issue_key(key: str) -> str:
    """
    Reduce an issue key to its comparable form.

    "sn12345/2020-01-01" and "sn12345/20200101" both become
    "sn1234520200101". Surrounding whitespace is ignored.
    """
    key = key.strip()
    for sep in ("-", "_", "/"):
        key = key.replace(sep, "")
    return key


@dataclass
class Issue:
    """One <issue> entry: a dated, edition-specific publication."""
    lccn: str
    issue_date: str
    edition_order: str
    path: str

    @property
    def key(self) -> str:
        """Normalized identity key (LCCN + date + edition)."""
        return normalize_issue_key(
            self.lccn + "/" + self.issue_date + self.edition_order
        )

    @property
    def short_key(self) -> str:
        """Identity key without the edition order."""
        return normalize_issue_key(self.lccn + "/" + self.issue_date)

    @property
    def directory(self) -> str:
        """Containing directory: the path with its final segment removed."""
        path = self.path.replace("\\", "/")
        if "/" not in path:
            return ""
        return path.rsplit("/", 1)[0]


@dataclass
class Reel:
    """One <reel> entry. Reels are never excluded."""
    reel_number: str
    path: str


@dataclass
class BatchManifest:
    """
    Parsed batch.xml.

    nsmap and extra_attrs hold what the source root declared beyond the
    modelled attributes (e.g. xsi:schemaLocation), so a rewritten
    manifest carries the same declarations.
    """
    name: str
    awardee: str
    award_year: str
    issues: List[Issue] = field(default_factory=list)
    reels: List[Reel] = field(default_factory=list)
    nsmap: Dict[Optional[str], str] = field(default_factory=lambda: {None: NDNP_NS})
    extra_attrs: Dict[str, str] = field(default_factory=dict)

    def issue_keys(self) -> List[str]:
        return [i.key for i in self.issues]

    def to_xml(self) -> bytes:
        """Serialize to a UTF-8 XML document with declaration."""
        nsmap = dict(self.nsmap)
        if NDNP_NS not in nsmap.values():
            nsmap[None] = NDNP_NS

        root = etree.Element(_BATCH_TAG, nsmap=nsmap)
        root.set("name", self.name)
        root.set("awardee", self.awardee)
        root.set("awardYear", self.award_year)
        for attr, value in self.extra_attrs.items():
            root.set(attr, value)

        for issue in self.issues:
            el = etree.SubElement(root, _ISSUE_TAG)
            el.set("lccn", issue.lccn)
            el.set("issueDate", issue.issue_date)
            el.set("editionOrder", issue.edition_order)
            el.text = issue.path
        for reel in self.reels:
            el = etree.SubElement(root, _REEL_TAG)
            el.set("reelNumber", reel.reel_number)
            el.text = reel.path

        return etree.tostring(
            root, xml_declaration=True, encoding="UTF-8", pretty_print=True,
        )


# ============================================================================
# Parsing
# ============================================================================

def parse_batch(path: str) -> BatchManifest:
    """
    Read and parse a batch.xml file.

    Raises ParseError if the file cannot be read, is not XML, or is not
    an NDNP <batch>; EmptyManifestError if it has no issues;
    DuplicateIssueKeyError if two issues share a key.
    """
    try:
        tree = etree.parse(path, etree.XMLParser(remove_blank_text=True))
    except OSError as e:
        raise ParseError(f"Unable to read batch manifest {path!r}: {e}", path=path) from e
    except etree.XMLSyntaxError as e:
        raise ParseError(f"Unable to parse batch manifest {path!r}: {e}", path=path) from e

    root = tree.getroot()
    if root.tag != _BATCH_TAG:
        raise ParseError(
            f"Batch manifest {path!r} has root {root.tag!r}, expected {_BATCH_TAG!r}",
            path=path,
        )

    issues = [
        Issue(
            lccn=el.get("lccn", ""),
            issue_date=el.get("issueDate", ""),
            edition_order=el.get("editionOrder", ""),
            path=(el.text or "").strip(),
        )
        for el in root.iterchildren(_ISSUE_TAG)
    ]
    if not issues:
        raise EmptyManifestError(path)

    seen = set()
    for issue in issues:
        if issue.key in seen:
            raise DuplicateIssueKeyError(issue.key, path=path)
        seen.add(issue.key)

    reels = [
        Reel(reel_number=el.get("reelNumber", ""), path=(el.text or "").strip())
        for el in root.iterchildren(_REEL_TAG)
    ]

    return BatchManifest(
        name=root.get("name", ""),
        awardee=root.get("awardee", ""),
        award_year=root.get("awardYear", ""),
        issues=issues,
        reels=reels,
        nsmap=dict(root.nsmap),
        extra_attrs={k: v for k, v in root.attrib.items() if k not in _ROOT_ATTRS},
    )


# ============================================================================
# Resolution
# ============================================================================

def _build_key_index(issues: List[Issue]) -> Dict[str, Issue]:
    """
    Map normalized keys to issues.

    Full keys always map. LCCN + date (no edition) maps to the primary
    edition so "sn12345/2020-01-01" finds edition 01 of that day.
    """
    index: Dict[str, Issue] = {}
    for issue in issues:
        index[issue.key] = issue
    for issue in issues:
        if issue.edition_order == DEFAULT_EDITION:
            index.setdefault(issue.short_key, issue)
    return index


def _skip_dir_for(issue: Issue, anchors: List[str]) -> Tuple[str, bool]:
    """
    Absolute, normalized containing directory of an issue.

    Each anchor is tried in turn and the first one holding the issue's
    folder wins. When none does, the first anchor's path is returned
    with found=False.
    """
    rel = issue.directory
    if not rel:
        raise ParseError(
            f"Issue {issue.key!r} has no containing directory in its path {issue.path!r}"
        )
    candidates = [
        os.path.normpath(os.path.join(anchor, *rel.split("/"))) for anchor in anchors
    ]
    for candidate in candidates:
        if os.path.isdir(candidate):
            return candidate, True
    return candidates[0], False


def resolve(
    manifest_path: str,
    issue_keys: Iterable[str],
    data_dir: Optional[str] = None,
    batch_root: Optional[str] = None,
    require_dirs: bool = False,
) -> Tuple[BatchManifest, FrozenSet[str]]:
    """
    Resolve caller issue keys against a batch manifest.

    Parameters
    ----------
    manifest_path : str
        Path to the source batch.xml.
    issue_keys : iterable of str
        Keys of the issues to REMOVE from the batch.
    data_dir : str, optional
        Directory that issue paths are relative to. Defaults to the
        manifest's own directory.
    batch_root : str, optional
        Second place to look for an issue's folder when it is not
        under data_dir (batches that keep issues beside data/).
    require_dirs : bool
        If True, an issue whose folder exists under neither location
        raises MissingIssueDirectoryError. Copying would otherwise
        carry the issue's files into a batch whose manifest no longer
        lists it.

    Returns
    -------
    (filtered_manifest, skip_directories)
        filtered_manifest lists only kept issues, in their original
        order, with reels untouched. skip_directories holds absolute
        normalized paths; nothing under them may be copied.
    """
    manifest = parse_batch(manifest_path)
    if data_dir is None:
        data_dir = os.path.dirname(os.path.abspath(manifest_path))
    anchors = [os.path.abspath(data_dir)]
    if batch_root is not None and os.path.abspath(batch_root) not in anchors:
        anchors.append(os.path.abspath(batch_root))

    logger.info("manifest_read", path=manifest_path, issues=len(manifest.issues),
                reels=len(manifest.reels))

    index = _build_key_index(manifest.issues)

    excluded = set()
    skip_dirs: List[str] = []
    for raw_key in issue_keys:
        key = normalize_issue_key(raw_key)
        issue = index.get(key)
        if issue is None:
            logger.error("issue_key_not_found", key=raw_key, normalized=key)
            raise UnknownKeyError(raw_key)

        skip_dir, found = _skip_dir_for(issue, anchors)
        if not found:
            if require_dirs:
                logger.error("issue_directory_missing", key=raw_key, directory=skip_dir)
                raise MissingIssueDirectoryError(raw_key, skip_dir)
            logger.warning("issue_directory_missing", key=raw_key, directory=skip_dir)
        logger.info("issue_key_mapped", key=raw_key, directory=skip_dir)
        excluded.add(issue.key)
        if skip_dir not in skip_dirs:
            skip_dirs.append(skip_dir)

    filtered = BatchManifest(
        name=manifest.name,
        awardee=manifest.awardee,
        award_year=manifest.award_year,
        issues=[i for i in manifest.issues if i.key not in excluded],
        reels=list(manifest.reels),
        nsmap=manifest.nsmap,
        extra_attrs=manifest.extra_attrs,
    )
    return filtered, frozenset(skip_dirs)


def write_batch_xml(manifest: BatchManifest, path: str) -> None:
    """Write a manifest to path, creating parent directories as needed."""
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "wb") as f:
        f.write(manifest.to_xml())
    logger.info("manifest_written", path=path, issues=len(manifest.issues),
                reels=len(manifest.reels))


def is_under(path: str, directory: str) -> bool:
    """True if path is directory itself or lies beneath it (normalized)."""
    path = os.path.normpath(path)
    directory = os.path.normpath(directory)
    return path == directory or path.startswith(directory.rstrip(os.sep) + os.sep)
