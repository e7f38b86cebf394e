"""
Versioned prompt files.

Each file under ``prompts/`` starts with a comment header and a separator:

    # PROMPT: stage_classification
    # VERSION: 1.0.0
    # LAST_UPDATED: 2026-09-02
    # DESCRIPTION: Place an unstaged donor into a journey stage
    # ---PROMPT_START---
    Classify this donor...

Only the body below the separator is hashed. Editing the body without bumping
VERSION is reported (or rejected, with PROMPT_VERSION_CHECK=strict) the next
time the same process loads the prompt.

    prompt = load_prompt("stage_classification")
    text = prompt.render(donor_info=..., journey_graph=..., donor_history=...)
"""

import hashlib
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent / "prompts"

# warn | strict | off
VERSION_CHECK_MODE = os.environ.get("PROMPT_VERSION_CHECK", "warn")

# name -> version -> body hash seen earlier in this process
_version_hash_cache: Dict[str, Dict[str, str]] = {}

_PLACEHOLDER = re.compile(r"\{([a-z_]+)\}")
_SEPARATOR = re.compile(r"^#\s*---PROMPT_START---\s*$", re.MULTILINE)
_HEADER_FIELD = re.compile(r"^#\s*(\w+):\s*(.+)$")


@dataclass
class PromptInfo:
    name: str
    version: str
    content: str
    content_hash: str
    last_updated: Optional[str] = None
    description: Optional[str] = None
    file_path: Optional[str] = None
    hash_mismatch: bool = False

    def render(self, **values: str) -> str:
        """Fill ``{placeholder}`` slots.

        Only lowercase identifiers in braces are placeholders, so JSON examples
        inside a prompt are left alone.

        Raises:
            KeyError: If a placeholder has no value
        """

        def replace(match: re.Match) -> str:
            key = match.group(1)
            if key not in values:
                raise KeyError(f"Prompt '{self.name}' needs a value for '{key}'")
            return str(values[key])

        return _PLACEHOLDER.sub(replace, self.content)

    @property
    def placeholders(self) -> set[str]:
        return set(_PLACEHOLDER.findall(self.content))

    def to_dict(self) -> Dict:
        """Fields recorded next to an LLM result to trace which prompt produced it."""
        return {
            "prompt_name": self.name,
            "prompt_version": self.version,
            "prompt_hash": self.content_hash,
            "hash_mismatch": self.hash_mismatch,
        }


def _body_hash(body: str) -> str:
    return hashlib.sha256(body.strip().encode()).hexdigest()[:16]


def _split_header(text: str) -> tuple[Dict[str, str], str]:
    """Return (header fields keyed in lowercase, body). Files without a separator are all body."""
    separator = _SEPARATOR.search(text)
    if separator is None:
        return {}, text.strip()

    fields = {}
    for line in text[: separator.start()].splitlines():
        field_match = _HEADER_FIELD.match(line.strip())
        if field_match:
            fields[field_match.group(1).lower()] = field_match.group(2).strip()
    return fields, text[separator.end() :].strip()


def _check_version(name: str, version: str, digest: str) -> bool:
    """Record the hash for this version; True when it differs from an earlier load."""
    seen = _version_hash_cache.setdefault(name, {})
    previous = seen.get(version)
    seen[version] = digest
    if previous is None or previous == digest:
        return False

    message = (
        f"Prompt '{name}' changed without a version bump (still {version}, "
        f"hash {previous[:8]} -> {digest[:8]}). Consider bumping the version."
    )
    if VERSION_CHECK_MODE == "strict":
        raise ValueError(message)
    logger.warning(message)
    return True


def load_prompt(name: str, prompts_dir: Optional[Path] = None, check_version: bool = True) -> PromptInfo:
    """
    Read ``<prompts_dir>/<name>.txt`` and its header.

    Raises:
        FileNotFoundError: No such prompt
        ValueError: Body changed without a version bump while PROMPT_VERSION_CHECK=strict
    """
    path = (prompts_dir or PROMPTS_DIR) / f"{name}.txt"
    if not path.is_file():
        raise FileNotFoundError(f"Prompt file not found: {path}")

    fields, body = _split_header(path.read_text())
    version = fields.get("version", "0.0.0")
    digest = _body_hash(body)

    changed = False
    if check_version and VERSION_CHECK_MODE != "off":
        changed = _check_version(name, version, digest)

    return PromptInfo(
        name=name,
        version=version,
        content=body,
        content_hash=digest,
        last_updated=fields.get("last_updated"),
        description=fields.get("description"),
        file_path=str(path),
        hash_mismatch=changed,
    )


def list_prompts(prompts_dir: Optional[Path] = None) -> list[PromptInfo]:
    """Every prompt in the directory, sorted by name; unreadable files are logged and skipped."""
    directory = prompts_dir or PROMPTS_DIR
    prompts = []
    for path in sorted(directory.glob("*.txt")):
        try:
            prompts.append(load_prompt(path.stem, directory, check_version=False))
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Skipping prompt {path.stem}: {e}")
    return prompts
