from typing import Dict, Optional


class TraceId:
    """
    X-Ray trace header delivered with each invocation:
    Root=1-timestamp-randomuuid;Parent=parentid;Sampled=sampled

    Unknown key/value pairs (e.g. Lineage=...) are preserved so the header
    can be handed back to the process environment unchanged.
    """

    def __init__(
        self,
        root: str,
        parent: Optional[str] = None,
        sampled: Optional[str] = None,
        extra: Optional[Dict[str, str]] = None,
    ):
        self.root = root
        self.parent = parent
        self.sampled = sampled
        self.extra = extra or {}

    @classmethod
    def parse(cls, header: str) -> "TraceId":
        """Parse a Lambda-Runtime-Trace-Id header string."""
        parts: Dict[str, str] = {}
        for part in header.split(";"):
            if "=" not in part:
                continue
            k, v = part.split("=", 1)
            parts[k.strip()] = v.strip()

        root = parts.pop("Root", "")
        parent = parts.pop("Parent", None)
        sampled = parts.pop("Sampled", None)

        # Raw ID without Root= prefix.
        if not root and header and "-" in header and "=" not in header:
            root = header.strip()

        return cls(root=root, parent=parent, sampled=sampled, extra=parts)

    def __str__(self) -> str:
        """Generate the header-formatted string."""
        s = f"Root={self.root}"
        if self.parent:
            s += f";Parent={self.parent}"
        if self.sampled:
            s += f";Sampled={self.sampled}"
        for k, v in self.extra.items():
            s += f";{k}={v}"
        return s
