"""dbcontext - file-based database context for LLM agents."""

__version__ = "0.1.0"
