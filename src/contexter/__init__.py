"""contexter: gather a project's files into a single context document for an LLM."""

__version__ = "0.3.0"
