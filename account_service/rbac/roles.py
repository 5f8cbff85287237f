"""
Role names as a value type.

Accounts store their roles as a comma-delimited string (``ROLE_USER,ROLE_ADMIN``)
and tokens carry them as a list.  Both are parsed into a ``RoleSet``:
an ordered, de-duplicated tuple of interned names.

Membership is exact-token only.  A required role ``ADMIN`` is satisfied
by ``ADMIN`` or by ``<prefix>ADMIN`` (``ROLE_ADMIN`` with the default
prefix) and never by a name that merely contains it, such as
``SUPERADMIN``.
"""

import sys
from dataclasses import dataclass
from typing import Iterable, Iterator

DELIMITER = ","


@dataclass(frozen=True)
class RoleSet:
    names: tuple[str, ...] = ()

    @classmethod
    def of(cls, names: Iterable[str]) -> "RoleSet":
        seen: list[str] = []
        for name in names:
            name = name.strip()
            if name and name not in seen:
                seen.append(sys.intern(name))
        return cls(tuple(seen))

    @classmethod
    def parse(cls, raw: str | None) -> "RoleSet":
        if not raw:
            return cls()
        return cls.of(raw.split(DELIMITER))

    def serialize(self) -> str:
        return DELIMITER.join(self.names)

    def has(self, required: str, prefix: str = "") -> bool:
        """True if ``required`` is held literally or with ``prefix`` applied."""
        if required in self.names:
            return True
        return bool(prefix) and (prefix + required) in self.names

    def __contains__(self, name: object) -> bool:
        return name in self.names

    def __iter__(self) -> Iterator[str]:
        return iter(self.names)

    def __len__(self) -> int:
        return len(self.names)

    def __bool__(self) -> bool:
        return bool(self.names)
