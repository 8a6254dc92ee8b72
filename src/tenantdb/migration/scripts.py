"""Migration script discovery and batch splitting.

Scripts are the ``.sql`` files below a scripts directory, searched
recursively, identified by their path relative to that directory (POSIX
separators) and applied in ascending ordinal order of that name.
"""

import re
from dataclasses import dataclass
from pathlib import Path

from tenantdb.models.database import DatabaseProvider

_GO_LINE = re.compile(r"^\s*GO(?:\s+\d+)?\s*;?\s*$", re.IGNORECASE)
_DOLLAR_TAG = re.compile(r"\$[A-Za-z_][A-Za-z0-9_]*\$|\$\$")


@dataclass(frozen=True, slots=True)
class MigrationScript:
    """One migration script on disk.

    Attributes:
        name: Journal name, the path relative to the scripts directory
        path: Absolute file path
    """

    name: str
    path: Path

    def read(self) -> str:
        return self.path.read_text(encoding="utf-8-sig")


def has_sql_files(scripts_path: str | Path) -> bool:
    """Whether the directory exists and contains at least one ``.sql`` file."""
    root = Path(scripts_path)
    if not root.is_dir():
        return False
    return any(p.is_file() for p in root.rglob("*.sql"))


def discover_scripts(scripts_path: str | Path) -> list[MigrationScript]:
    """List scripts below a directory in application order.

    Raises:
        FileNotFoundError: If the directory does not exist
    """
    root = Path(scripts_path)
    if not root.is_dir():
        raise FileNotFoundError(f"Scripts directory not found: {root}")

    scripts = [
        MigrationScript(name=p.relative_to(root).as_posix(), path=p.resolve())
        for p in root.rglob("*.sql")
        if p.is_file()
    ]
    return sorted(scripts, key=lambda s: s.name)


def split_statements(sql: str, provider: DatabaseProvider) -> list[str]:
    """Split a script into individually executable statements.

    SQL Server batches are separated by ``GO`` lines. Other providers split
    on ``;`` outside quotes, comments and PostgreSQL dollar-quoted bodies.
    Backslash escapes are honored in MySQL strings and PostgreSQL ``E''``
    strings only. Chunks holding only whitespace or comments are dropped.
    """
    if provider is DatabaseProvider.SQLSERVER:
        return _split_go_batches(sql)
    return _split_semicolons(sql, backslash_escapes=provider is DatabaseProvider.MYSQL)


def _split_go_batches(sql: str) -> list[str]:
    batches: list[str] = []
    current: list[str] = []
    for line in sql.splitlines():
        if _GO_LINE.match(line):
            batches.append("\n".join(current))
            current = []
        else:
            current.append(line)
    batches.append("\n".join(current))
    return [b.strip() for b in batches if _has_code(b)]


def _split_semicolons(sql: str, *, backslash_escapes: bool) -> list[str]:
    statements: list[str] = []
    start = 0
    i = 0
    n = len(sql)

    while i < n:
        ch = sql[i]
        nxt = sql[i + 1] if i + 1 < n else ""

        if ch == "-" and nxt == "-":
            end = sql.find("\n", i)
            i = n if end == -1 else end + 1
        elif ch == "/" and nxt == "*":
            end = sql.find("*/", i + 2)
            i = n if end == -1 else end + 2
        elif ch in ("'", '"', "`"):
            escapes = ch != "`" and (backslash_escapes or _is_escape_string(sql, i, ch))
            i = _skip_quoted(sql, i, ch, escapes)
        elif ch == "$":
            match = _DOLLAR_TAG.match(sql, i)
            if match:
                tag = match.group(0)
                end = sql.find(tag, match.end())
                i = n if end == -1 else end + len(tag)
            else:
                i += 1
        elif ch == ";":
            statements.append(sql[start:i])
            i += 1
            start = i
        else:
            i += 1

    statements.append(sql[start:])
    return [s.strip() for s in statements if _has_code(s)]


def _skip_quoted(sql: str, i: int, quote: str, backslash_escapes: bool) -> int:
    """Return the index just past the quoted literal starting at ``i``."""
    j = i + 1
    n = len(sql)
    while j < n:
        if sql[j] == quote:
            # doubled quote is an escaped quote
            if j + 1 < n and sql[j + 1] == quote:
                j += 2
                continue
            return j + 1
        if backslash_escapes and sql[j] == "\\":
            j += 2
            continue
        j += 1
    return n


def _is_escape_string(sql: str, i: int, quote: str) -> bool:
    """PostgreSQL E'...' literal, the only form it reads backslash escapes in."""
    if quote != "'" or i == 0 or sql[i - 1] not in "eE":
        return False
    return i == 1 or not (sql[i - 2].isalnum() or sql[i - 2] == "_")


def _has_code(chunk: str) -> bool:
    stripped = re.sub(r"/\*.*?\*/", "", chunk, flags=re.DOTALL)
    stripped = re.sub(r"--[^\n]*", "", stripped)
    return bool(stripped.strip())
