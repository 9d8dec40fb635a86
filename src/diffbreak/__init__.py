"""DiffBreak: what changed and what might break between two release tags.

Collects release notes, commit titles and changed files from GitHub for the
window between two tags, asks a locally-run model (Ollama) for a risk
synthesis, and normalizes the reply into a stable JSON contract.
"""

__version__ = "0.1.0"
