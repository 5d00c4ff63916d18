"""
Generated artifact types.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List


@dataclass
class GeneratedFile:
    file_path: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"filePath": self.file_path, "content": self.content}


@dataclass
class GeneratedArtifact:
    """Ordered set of generated files for one request"""
    files: List[GeneratedFile] = field(default_factory=list)
    repaired: bool = False

    @property
    def primary_code(self) -> str:
        return self.files[0].content if self.files else ""

    def __len__(self) -> int:
        return len(self.files)

    def to_list(self) -> List[Dict[str, str]]:
        return [f.to_dict() for f in self.files]
