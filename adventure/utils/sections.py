"""
Tagged-section extraction for XML-like model output.

Model responses such as ``<response><scene>...</scene><narrative>...</narrative></response>``
are parsed with plain string scanning. Missing and duplicated sections are
reported as error strings so callers can feed them back to the model instead
of aborting.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple


@dataclass
class SectionExtraction:
    """Result of extracting several sections from one text"""

    sections: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def get(self, name: str) -> Optional[str]:
        return self.sections.get(name)


def find_section(text: str, name: str) -> Tuple[Optional[str], List[str]]:
    """
    Find a closed ``<name>...</name>`` section.

    Returns:
        Tuple of (stripped section content or None, list of errors)
    """
    start_tag = f"<{name}>"
    end_tag = f"</{name}>"
    errors: List[str] = []

    start = text.find(start_tag)
    end = text.find(end_tag, start) if start != -1 else -1

    if start != -1 and text.find(start_tag, start + len(start_tag)) != -1:
        errors.append(f'The tag "{name}" appears multiple times in the answer')

    if start != -1 and end != -1:
        return text[start + len(start_tag):end].strip(), errors

    errors.append(f'Failed to find "{name}" section in the answer')
    return None, errors


def extract_sections(text: str, names: Iterable[str]) -> SectionExtraction:
    """Extract every named section, collecting errors for all of them"""
    result = SectionExtraction()
    for name in names:
        content, errors = find_section(text, name)
        result.errors.extend(errors)
        if content is not None:
            result.sections[name] = content
    return result


def find_partial_section(text: str, name: str) -> Optional[str]:
    """
    Find a section that may still be streaming.

    A closed section is returned as is. An open one is returned up to the end
    of the text, without a trailing half-written tag.
    """
    content, errors = find_section(text, name)
    if content is not None and not errors:
        return content

    start_tag = f"<{name}>"
    start = text.find(start_tag)
    if start == -1:
        return None

    tail = text[start + len(start_tag):]
    end = tail.find(f"</{name}>")
    if end != -1:
        return tail[:end]

    cut = tail.rfind("<")
    if cut != -1 and ">" not in tail[cut:]:
        tail = tail[:cut]
    return tail


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown ```json fence"""
    text = text.strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        text = text[first_newline + 1:] if first_newline != -1 else ""
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()
