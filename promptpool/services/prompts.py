from pathlib import Path

import yaml

PROMPTS_DIR = Path(__file__).resolve().parents[2] / "prompts"


def load_prompt(name: str) -> dict:
    """Load a prompt YAML file."""
    with open(PROMPTS_DIR / name, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)
