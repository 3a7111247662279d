"""
Parsing of Debian control files (Release, Packages).

Control files are a series of RFC822-style stanzas separated by blank lines.
The parser is lenient. Lines it cannot make sense of are dropped instead of
failing the whole file.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional


def iter_stanzas(text: str) -> Iterator[Dict[str, str]]:
    """Yield one ordered dict per blank-line-delimited stanza."""
    current: Dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if line == "":
            if current:
                yield current
                current = {}
            continue

        if ":" not in line:
            # No key on this line, nothing to attach it to reliably
            continue

        key, value = line.split(":", 1)
        key = key.strip()
        value = value.strip()
        if key in current:
            current[key] += "\n" + value
        else:
            current[key] = value

    if current:
        yield current


def parse_control(text: str) -> List[Dict[str, str]]:
    """
    Parse control file text into a list of stanzas.

    A repeated key within one stanza is appended to the previous value,
    separated by a newline. Stanza order is kept and duplicates are not
    removed; deciding what to do with them is up to the caller.
    """
    return list(iter_stanzas(text))


def dump_control(stanzas) -> str:
    """Serialize stanzas back to control file text.

    Multi-line values are written as repeated ``Key: line`` entries, which
    parse_control folds back into a single newline-joined value.
    """
    blocks = []
    for stanza in stanzas:
        lines = []
        for key, value in stanza.items():
            for part in str(value).split("\n"):
                lines.append(f"{key}: {part}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks) + "\n"


@dataclass(frozen=True)
class ReleaseDescriptor:
    suite: Optional[str] = None
    codename: Optional[str] = None
    components: List[str] = field(default_factory=lambda: ["main"])

    def releases(self) -> List[str]:
        """Suite and codename, deduplicated, empty values skipped."""
        out = []
        for name in (self.suite, self.codename):
            if name and name not in out:
                out.append(name)
        return out


def _first_field(text, key):
    # [ \t]* rather than \s* so an empty value never swallows the next line
    match = re.search(rf"^{re.escape(key)}:[ \t]*(.*)$", text, re.MULTILINE)
    if not match:
        return None
    value = match.group(1).strip()
    return value or None


def extract_release_fields(text: str) -> ReleaseDescriptor:
    """Pull Suite, Codename and Components out of a Release file."""
    components = []
    raw_components = _first_field(text, "Components")
    if raw_components:
        for token in raw_components.split():
            if token not in components:
                components.append(token)

    return ReleaseDescriptor(
        suite=_first_field(text, "Suite"),
        codename=_first_field(text, "Codename"),
        components=components or ["main"],
    )
