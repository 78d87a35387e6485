"""
Domain name value type with relative/absolute arithmetic
"""
from typing import Iterable, Optional, Tuple


class DomainName:
    """
    A DNS name as a sequence of labels plus an absolute flag.

    Absolute names are fully qualified (terminated by the root); relative
    names are interpreted against some base domain. Comparison and hashing
    are case-insensitive on labels.
    """

    __slots__ = ("labels", "absolute")

    def __init__(self, labels: Iterable[str], absolute: bool = False):
        labels = tuple(str(label) for label in labels)
        for label in labels:
            if not label:
                raise ValueError("empty label in domain name")
        object.__setattr__(self, "labels", labels)
        object.__setattr__(self, "absolute", bool(absolute))

    def __setattr__(self, key, value):
        raise AttributeError("DomainName is immutable")

    @classmethod
    def from_text(cls, text, absolute: Optional[bool] = None) -> "DomainName":
        """
        Parse a dotted name.

        A trailing dot marks the name absolute, unless ``absolute`` is given
        explicitly.
        """
        if isinstance(text, DomainName):
            return text
        text = str(text).strip()
        trailing = text.endswith(".")
        text = text.rstrip(".")
        labels = text.split(".") if text else []
        if absolute is None:
            absolute = trailing
        return cls(labels, absolute)

    @property
    def key(self) -> Tuple[Tuple[str, ...], bool]:
        return tuple(label.lower() for label in self.labels), self.absolute

    def __eq__(self, other):
        if not isinstance(other, DomainName):
            return NotImplemented
        return self.key == other.key

    def __hash__(self):
        return hash(self.key)

    def __len__(self):
        return len(self.labels)

    def __str__(self):
        return ".".join(self.labels)

    def __repr__(self):
        return f"DomainName({self.fqdn!r})"

    @property
    def fqdn(self) -> str:
        """Dotted form, with a trailing dot when absolute"""
        return str(self) + "." if self.absolute else str(self)

    def concat(self, suffix: "DomainName") -> "DomainName":
        """Append ``suffix``; the result takes the suffix's absoluteness."""
        suffix = DomainName.from_text(suffix)
        if self.absolute:
            raise ValueError(f"cannot append {suffix.fqdn} to absolute name {self.fqdn}")
        return DomainName(self.labels + suffix.labels, suffix.absolute)

    __add__ = concat

    def is_subdomain_of(self, other: "DomainName") -> bool:
        """True when ``other`` is a proper suffix of this name."""
        other = DomainName.from_text(other)
        if self.absolute != other.absolute or len(self) <= len(other):
            return False
        mine = self.key[0]
        return mine[len(mine) - len(other):] == other.key[0]

    def strip_suffix(self, base: "DomainName") -> "DomainName":
        """Remove ``base`` from the end of this name, producing a relative name."""
        base = DomainName.from_text(base)
        if self.absolute != base.absolute:
            raise ValueError(f"{self.fqdn} and {base.fqdn} differ in absoluteness")
        if not self.is_subdomain_of(base):
            raise ValueError(f"{self.fqdn} is not a subdomain of {base.fqdn}")
        return DomainName(self.labels[:len(self) - len(base)], False)

    __sub__ = strip_suffix

    def parent(self) -> "DomainName":
        if not self.labels:
            raise ValueError("the root has no parent")
        return DomainName(self.labels[1:], self.absolute)

    def to_absolute(self) -> "DomainName":
        return self if self.absolute else DomainName(self.labels, True)
