from storyreel.prompts.manager import PromptManager, wrap_prompt_with_reference_guide

__all__ = ["PromptManager", "wrap_prompt_with_reference_guide"]
