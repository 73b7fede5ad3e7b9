"""ragstack — on-demand database + Ollama stack with a one-shot RAG pipeline."""

__version__ = "0.1.0"
