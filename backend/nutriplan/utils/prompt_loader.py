"""
Prompt loader utility for managing LLM prompts from JSON files.
Centralized prompt management for easier maintenance and updates.
"""
import json
from pathlib import Path
from typing import Dict, Any, Optional, Tuple
import logging
from langchain_core.prompts import PromptTemplate

logger = logging.getLogger(__name__)


class PromptLoader:
    """Loads and manages prompts from JSON files."""

    def __init__(self, prompts_dir: Optional[Path] = None):
        """Initialize the prompt loader."""
        self.prompts_dir = prompts_dir or Path(__file__).parent.parent / "prompts"
        self._cache: Dict[str, Dict[str, Any]] = {}

    def _load_prompt_file(self, filename: str) -> Dict[str, Any]:
        """
        Load a prompt JSON file.

        Args:
            filename: Name of the JSON file (without .json extension)

        Returns:
            Dictionary containing prompts
        """
        if filename in self._cache:
            return self._cache[filename]

        filepath = self.prompts_dir / f"{filename}.json"

        if not filepath.exists():
            logger.error(f"Prompt file not found: {filepath}")
            return {}

        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                prompts = json.load(f)
                self._cache[filename] = prompts
                return prompts
        except json.JSONDecodeError as e:
            logger.error(f"Error parsing prompt file {filepath}: {e}")
            return {}

    def get_llm_prompt(self, prompt_key: str) -> Dict[str, Any]:
        """
        Get an LLM prompt by key.

        Args:
            prompt_key: Key identifying the prompt (e.g., "meal_replacement")

        Returns:
            Dictionary with prompt templates
        """
        prompts = self._load_prompt_file("llm_prompts")
        return prompts.get(prompt_key, {})

    def get_system_and_template(self, prompt_key: str) -> Tuple[str, str]:
        """Return the joined system prompt and user template for a key."""
        config = self.get_llm_prompt(prompt_key)
        if not config:
            logger.warning(f"Prompt key '{prompt_key}' not found in llm prompts")

        system_prompt = config.get("system", "")
        if isinstance(system_prompt, list):
            system_prompt = "\n".join(system_prompt)

        user_template = config.get("user_template", "")
        if isinstance(user_template, list):
            user_template = "\n".join(user_template)

        return system_prompt, user_template

    def format_prompt(self, template: str, **kwargs: Any) -> str:
        """
        Fill a template with values.

        Literal braces in templates must be doubled; values are inserted as-is.
        """
        return PromptTemplate.from_template(template).format(**kwargs)


# Global instance
_prompt_loader: Optional[PromptLoader] = None


def get_prompt_loader() -> PromptLoader:
    """Get or create global PromptLoader instance."""
    global _prompt_loader
    if _prompt_loader is None:
        _prompt_loader = PromptLoader()
    return _prompt_loader
