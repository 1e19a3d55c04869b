"""Merge a previously published dists tree with a newly generated one.

The merged tree keeps everything from the base tree and lets the new
tree win on conflicts. Package indices are merged entry by entry so
packages published earlier stay installable even though the incoming
pool only holds the new uploads; the top-level Release manifest is
regenerated with checksums of the merged files.
"""

import gzip
import hashlib
import io
import lzma
import shutil
from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from debian.deb822 import Deb822, Packages, Sources

from ..common.errors import MergeError
from ..common.logger import get_logger

logger = get_logger("repos.merge")

COMPRESSIONS = {
    "": (lambda data: data, lambda data: data),
    ".gz": (gzip.decompress, lambda data: gzip.compress(data, mtime=0)),
    ".xz": (lzma.decompress, lzma.compress),
}

RELEASE_FILES = ("Release", "Release.gpg", "InRelease")

RELEASE_CHECKSUMS = (
    ("MD5Sum", hashlib.md5),
    ("SHA1", hashlib.sha1),
    ("SHA256", hashlib.sha256),
    ("SHA512", hashlib.sha512),
)

UNION_FIELDS = ("Architectures", "Components")


def _split_compression(name: str) -> Tuple[str, str]:
    for suffix in (".gz", ".xz"):
        if name.endswith(suffix):
            return name[: -len(suffix)], suffix
    return name, ""


def _index_kind(stem: str) -> Optional[str]:
    if stem == "Packages":
        return "packages"
    if stem == "Sources":
        return "sources"
    if stem.startswith("Contents-"):
        return "contents"
    return None


def _read_variant(path: Path) -> bytes:
    _, suffix = _split_compression(path.name)
    decompress = COMPRESSIONS[suffix][0]
    return decompress(path.read_bytes())


def _package_key(entry: Deb822) -> Tuple[str, ...]:
    return (entry.get("Package", ""), entry.get("Version", ""), entry.get("Architecture", ""))


def _source_key(entry: Deb822) -> Tuple[str, ...]:
    return (entry.get("Package", ""), entry.get("Version", ""))


def merge_stanzas(base: bytes, new: bytes, kind: str) -> bytes:
    """Union two Packages/Sources indices; new stanzas win on key collision."""
    parser = Packages if kind == "packages" else Sources
    key = _package_key if kind == "packages" else _source_key

    entries: "OrderedDict[Tuple[str, ...], Deb822]" = OrderedDict()
    for data in (base, new):
        text = io.StringIO(data.decode("utf-8"))
        for entry in parser.iter_paragraphs(text, use_apt_pkg=False):
            entries[key(entry)] = entry
    return "\n".join(entry.dump() for entry in entries.values()).encode("utf-8")


def merge_contents(base: bytes, new: bytes) -> bytes:
    """Union two Contents indices, combining the locations of each file."""
    locations: "OrderedDict[str, List[str]]" = OrderedDict()
    for data in (base, new):
        for line in data.decode("utf-8").splitlines():
            if not line.strip():
                continue
            path, _, where = line.rpartition(" ")
            path = path.strip()
            if not path:
                continue
            known = locations.setdefault(path, [])
            for location in where.split(","):
                if location and location not in known:
                    known.append(location)
    lines = [f"{path} {','.join(where)}" for path, where in sorted(locations.items())]
    return ("\n".join(lines) + "\n").encode("utf-8") if lines else b""


def _union_words(*values: Optional[str]) -> str:
    words: List[str] = []
    for value in values:
        for word in (value or "").split():
            if word not in words:
                words.append(word)
    return " ".join(words)


def _files(root: Path) -> Dict[str, Path]:
    return {p.relative_to(root).as_posix(): p for p in sorted(root.rglob("*")) if p.is_file()}


class DistsMerger:
    """Three-way merge of base and newly generated dists trees.

    ``merge(base_dir, new_dir, output_dir)``:

    - every base file is carried into the output unchanged unless the new
      tree has the same path;
    - on a path collision the new file wins, except for package indices
      (stanzas unioned, new wins per package/version) and the top-level
      Release (regenerated for the merged content).
    """

    def merge(self, base_dir: Path, new_dir: Path, output_dir: Path) -> None:
        """Merge two dists/<codename> trees into ``output_dir``.

        Args:
            base_dir: Previously published tree (may be absent)
            new_dir: Freshly generated tree
            output_dir: Destination; must not exist yet

        Raises:
            MergeError: If either input is unreadable or the output exists
        """
        base_dir, new_dir, output_dir = Path(base_dir), Path(new_dir), Path(output_dir)
        if not new_dir.is_dir():
            raise MergeError(f"Generated dists tree {new_dir} does not exist", stage="merge")
        if base_dir.exists() and not base_dir.is_dir():
            raise MergeError(f"Base dists tree {base_dir} is not a directory", stage="merge")
        if output_dir.exists():
            raise MergeError(f"Merge output {output_dir} already exists", stage="merge")

        try:
            base_files = _files(base_dir) if base_dir.is_dir() else {}
            new_files = _files(new_dir)
            output_dir.mkdir(parents=True)
            self._merge_files(base_files, new_files, output_dir)
            self._write_release(base_dir / "Release", new_dir / "Release", output_dir)
        except (OSError, ValueError, EOFError, lzma.LZMAError) as e:
            raise MergeError(f"Cannot merge {base_dir} and {new_dir}: {e}", stage="merge") from e

        logger.info(
            f"Merged {len(base_files)} base and {len(new_files)} new files into {output_dir}"
        )

    def _merge_files(
        self, base_files: Dict[str, Path], new_files: Dict[str, Path], output_dir: Path
    ) -> None:
        index_families: Set[Tuple[str, str]] = set()

        for relative in sorted(set(base_files) | set(new_files)):
            if relative in RELEASE_FILES:
                continue
            parent, _, name = relative.rpartition("/")
            stem, _ = _split_compression(name)
            kind = _index_kind(stem)
            if kind and relative in new_files and any(
                f"{parent}/{stem}{s}".lstrip("/") in base_files for s in COMPRESSIONS
            ):
                index_families.add((parent, stem))
                continue

            source = new_files.get(relative) or base_files[relative]
            destination = output_dir / relative
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, destination)

        for parent, stem in sorted(index_families):
            self._merge_index(parent, stem, base_files, new_files, output_dir)

    def _family(self, files: Dict[str, Path], parent: str, stem: str) -> Dict[str, Path]:
        prefix = f"{parent}/" if parent else ""
        return {
            suffix: files[f"{prefix}{stem}{suffix}"]
            for suffix in COMPRESSIONS
            if f"{prefix}{stem}{suffix}" in files
        }

    def _merge_index(
        self,
        parent: str,
        stem: str,
        base_files: Dict[str, Path],
        new_files: Dict[str, Path],
        output_dir: Path,
    ) -> None:
        base_family = self._family(base_files, parent, stem)
        new_family = self._family(new_files, parent, stem)
        base_data = _read_variant(next(iter(base_family.values())))
        new_data = _read_variant(next(iter(new_family.values())))

        kind = _index_kind(stem)
        if kind == "contents":
            merged = merge_contents(base_data, new_data)
        else:
            merged = merge_stanzas(base_data, new_data, kind)

        target_dir = output_dir / parent if parent else output_dir
        target_dir.mkdir(parents=True, exist_ok=True)
        for suffix in sorted(set(base_family) | set(new_family)):
            compress = COMPRESSIONS[suffix][1]
            (target_dir / f"{stem}{suffix}").write_bytes(compress(merged))
        logger.debug(f"Merged index {parent}/{stem}")

    def _write_release(self, base_release: Path, new_release: Path, output_dir: Path) -> None:
        if not new_release.is_file():
            if base_release.is_file():
                raise MergeError(f"Generated tree has no Release manifest ({new_release})")
            return

        with new_release.open("r", encoding="utf-8") as f:
            new_entry = Deb822(f)
        base_entry = Deb822()
        if base_release.is_file():
            with base_release.open("r", encoding="utf-8") as f:
                base_entry = Deb822(f)

        checksum_fields = {name for name, _ in RELEASE_CHECKSUMS}
        entry = Deb822()
        for key, value in new_entry.items():
            if key in checksum_fields:
                continue
            if key in UNION_FIELDS:
                value = _union_words(base_entry.get(key), value)
            entry[key] = value

        files = [
            (relative, path)
            for relative, path in _files(output_dir).items()
            if relative not in RELEASE_FILES
        ]
        for name, algorithm in RELEASE_CHECKSUMS:
            if name not in new_entry:
                continue
            lines = [
                f" {algorithm(path.read_bytes()).hexdigest()} {path.stat().st_size: >16} {relative}"
                for relative, path in files
            ]
            entry[name] = "\n" + "\n".join(lines)

        (output_dir / "Release").write_text(entry.dump(), encoding="utf-8")