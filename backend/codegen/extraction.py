"""
Code Extraction
从模型输出中提取代码文件

1. Fenced blocks whose first line is a filename marker, e.g.
       ```tsx
       // filename: app/page.tsx
       ...
       ```
   Each becomes one file. Bodies shorter than 10 chars are dropped as noise.
2. Otherwise the first fenced block longer than 50 chars becomes the
   default file.
3. Otherwise the whole response is the default file.
"""

from __future__ import annotations
import logging
import re
from typing import List

from .models import GeneratedArtifact, GeneratedFile
from .repair import repair_code

logger = logging.getLogger(__name__)

DEFAULT_FILE_PATH = "app/page.tsx"
MIN_FILE_LENGTH = 10
MIN_FALLBACK_LENGTH = 50

_FILENAME_BLOCK = re.compile(
    r"```[\w+.-]*[ \t]*\n"
    r"[ \t]*(?://|/\*|\{/\*)[ \t]*filename:[ \t]*([^\n]+?)[ \t]*(?:\*/\}?)?[ \t]*\n"
    r"(.*?)```",
    re.DOTALL | re.IGNORECASE,
)
_ANY_BLOCK = re.compile(r"```[\w+.-]*[ \t]*\n(.*?)```", re.DOTALL)


def extract_files(raw_text: str) -> List[GeneratedFile]:
    """Split model output into files (no repair)"""
    text = raw_text or ""

    files: List[GeneratedFile] = []
    seen = {}
    for match in _FILENAME_BLOCK.finditer(text):
        path = re.sub(r"^\./", "", match.group(1).strip().strip("`'\""))
        body = match.group(2).strip()
        if len(body) < MIN_FILE_LENGTH or not path:
            continue
        if path in seen:
            # Later block for the same path replaces the earlier one
            files[seen[path]] = GeneratedFile(path, body)
            continue
        seen[path] = len(files)
        files.append(GeneratedFile(path, body))

    if files:
        logger.info(f"[Extract] Found {len(files)} file(s): {[f.file_path for f in files]}")
        return files

    for match in _ANY_BLOCK.finditer(text):
        body = match.group(1).strip()
        if len(body) > MIN_FALLBACK_LENGTH:
            logger.info(f"[Extract] No filename markers, using first code block as {DEFAULT_FILE_PATH}")
            return [GeneratedFile(DEFAULT_FILE_PATH, body)]

    body = text.strip()
    if not body:
        return []
    logger.info(f"[Extract] No code blocks found, using whole response as {DEFAULT_FILE_PATH}")
    return [GeneratedFile(DEFAULT_FILE_PATH, body)]


def extract(raw_text: str) -> GeneratedArtifact:
    """Extract files from model output and repair each one"""
    artifact = GeneratedArtifact()
    for generated in extract_files(raw_text):
        code, changed = repair_code(generated.content)
        artifact.files.append(GeneratedFile(generated.file_path, code))
        artifact.repaired = artifact.repaired or changed
    return artifact
