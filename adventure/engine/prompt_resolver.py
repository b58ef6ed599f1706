"""
Prompt template loading and parameter substitution
"""

import re
from pathlib import Path
from typing import Dict, Optional

from adventure.prompts import BUILT_IN_PROMPTS
from adventure.utils.logger import get_logger

logger = get_logger(__name__)

_PLACEHOLDER = re.compile(r"\{\{(.*?)\}\}")


class PromptResolver:
    """Resolves named templates from an override directory or the built-in set"""

    def __init__(self, prompts_dir: Optional[str] = None):
        self.prompts_dir = Path(prompts_dir) if prompts_dir else None
        self._cache: Dict[str, str] = {}

    def load(self, name: str) -> str:
        if name in self._cache:
            return self._cache[name]

        template: Optional[str] = None
        if self.prompts_dir is not None:
            path = self.prompts_dir / f"{name}.txt"
            if path.is_file():
                template = path.read_text(encoding="utf-8")
                logger.debug(f"[Prompts] Loaded '{name}' from {path}")

        if template is None:
            if name not in BUILT_IN_PROMPTS:
                raise KeyError(f"Unknown prompt template: {name}")
            template = BUILT_IN_PROMPTS[name]

        self._cache[name] = template
        return template

    def resolve(self, name: str, parameters: Dict[str, str]) -> str:
        """Load a template and substitute ``{{NAME}}`` placeholders"""
        return substitute(self.load(name), parameters)


def substitute(template: str, parameters: Dict[str, str]) -> str:
    """Replace placeholders of known parameters, leaving unknown ones intact"""

    def replace(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key in parameters:
            return parameters[key]
        return match.group(0)

    return _PLACEHOLDER.sub(replace, template)
